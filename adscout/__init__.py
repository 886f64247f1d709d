"""adscout: session-tracked ad intelligence workflows."""

from .collaborators import AdIntelligenceTools, FunctionsClient, FunctionsToolSuite
from .contracts import WorkflowArtifact, WorkflowFailure, WorkflowInput, WorkflowResult
from .logsink import ExecutionLogSink
from .orchestrator import WorkflowOrchestrator, run_workflow
from .persistence import get_repository
from .pipeline import StepDefinition, build_ad_intelligence_pipeline
from .steps import StepExecutor

__version__ = "0.1.0"
__all__ = [
    "AdIntelligenceTools",
    "ExecutionLogSink",
    "FunctionsClient",
    "FunctionsToolSuite",
    "StepDefinition",
    "StepExecutor",
    "WorkflowArtifact",
    "WorkflowFailure",
    "WorkflowInput",
    "WorkflowOrchestrator",
    "WorkflowResult",
    "build_ad_intelligence_pipeline",
    "get_repository",
    "run_workflow",
]
