"""3D generation pipeline and the remote services it drives."""

from .base import ArtifactPublisher, ImageGenerator, ModelGenerator, PromptOptimizer
from .github_publisher import GitHubPublisher
from .naming import artifact_file_name, sanitize_file_stem
from .openai_optimizer import OpenAIPromptOptimizer
from .pipeline import GenerationPipeline, PipelineStage
from .stability import StabilityImageGenerator, StabilityModelGenerator

__all__ = [
    "ArtifactPublisher",
    "ImageGenerator",
    "ModelGenerator",
    "PromptOptimizer",
    "GitHubPublisher",
    "OpenAIPromptOptimizer",
    "StabilityImageGenerator",
    "StabilityModelGenerator",
    "GenerationPipeline",
    "PipelineStage",
    "artifact_file_name",
    "sanitize_file_stem",
]
