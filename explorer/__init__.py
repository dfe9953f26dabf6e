"""PR Risk Explorer: turns a pull request into an automated risk verdict."""

from explorer.config import ExplorerConfig, ModelConfig, CodeHostConfig, DetectorThresholds
from explorer.errors import ExplorerError, ValidationError, AuthoritativeSourceError
from explorer.state import ChangeSet, FileChange, ScopeDescriptor, Plan, ExecutionResult, Report, Verdict
from explorer.pipeline import ExplorationPipeline, PipelineOutcome, Executor

__version__ = "0.1.0"
