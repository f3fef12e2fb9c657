"""Sequential generation pipeline: optimize prompt, image, 3D model, publish."""

import time
import shutil
import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .base import ArtifactPublisher, ImageGenerator, ModelGenerator, PromptOptimizer
from .naming import DEFAULT_MAX_LENGTH, artifact_file_name
from ..errors import ImageGenerationError, ModelGenerationError, PromptOptimizationError
from ..models.artifacts import ArtifactKind, GenerationArtifact, PublishedAsset
from ..storage.file_manager import FileManager

logger = logging.getLogger(__name__)


class PipelineStage(Enum):
    OPTIMIZE_PROMPT = "optimize_prompt"
    GENERATE_IMAGE = "generate_image"
    GENERATE_MODEL = "generate_model"
    PUBLISH = "publish"


StageCallback = Callable[[PipelineStage], None]


class GenerationPipeline:
    """Runs the generation stages strictly in order for one transcript.

    A failing stage raises its own error and no later stage runs. Files that
    were already written (e.g. an image without a model) stay on disk but are
    never published.
    """

    def __init__(self,
                 optimizer: PromptOptimizer,
                 image_generator: ImageGenerator,
                 model_generator: ModelGenerator,
                 publisher: ArtifactPublisher,
                 file_manager: FileManager,
                 style_modifier: str,
                 remote_path: str = "docs/generated_model.glb",
                 canonical_model_name: str = "generated_model.glb",
                 static_prefix: str = "/models",
                 max_name_length: int = DEFAULT_MAX_LENGTH):
        """Initialize generation pipeline.

        Args:
            optimizer: Prompt-optimization service
            image_generator: Image-generation service
            model_generator: 3D-generation service
            publisher: Remote artifact store
            file_manager: Local storage for generated files
            style_modifier: System instruction used when optimizing prompts
            remote_path: Canonical path of the published model in the remote store
            canonical_model_name: Local file name of the newest model
            static_prefix: URL prefix under which generated files are served
            max_name_length: Maximum length of sanitized file-name stems
        """
        self.optimizer = optimizer
        self.image_generator = image_generator
        self.model_generator = model_generator
        self.publisher = publisher
        self.file_manager = file_manager
        self.style_modifier = style_modifier
        self.remote_path = remote_path
        self.canonical_model_name = canonical_model_name
        self.static_prefix = static_prefix.rstrip('/')
        self.max_name_length = max_name_length

    async def run(self, prompt: str, on_stage: Optional[StageCallback] = None) -> PublishedAsset:
        """Turn a transcript into a published 3D model.

        Args:
            prompt: Transcript text
            on_stage: Called with each stage right before it starts

        Returns:
            The published asset
        """
        started = time.time()

        def enter(stage: PipelineStage) -> None:
            logger.info(f"Pipeline stage: {stage.value}")
            if on_stage is not None:
                on_stage(stage)

        enter(PipelineStage.OPTIMIZE_PROMPT)
        refined_prompt = await self.optimize_prompt(prompt)

        enter(PipelineStage.GENERATE_IMAGE)
        image = await self.generate_image(refined_prompt, source_prompt=prompt)

        enter(PipelineStage.GENERATE_MODEL)
        model = await self.generate_model(image)

        enter(PipelineStage.PUBLISH)
        asset = await self.publish(model)

        logger.info(f"Pipeline finished in {time.time() - started:.1f}s: {asset.url}")
        return asset

    async def optimize_prompt(self, prompt: str, style_modifier: Optional[str] = None) -> str:
        modifier = self.style_modifier if style_modifier is None else style_modifier
        refined = await self.optimizer.optimize(prompt, modifier)
        if not refined or not refined.strip():
            raise PromptOptimizationError("Prompt optimization returned empty text")
        logger.info(f"Optimized prompt: {refined}")
        return refined.strip()

    async def generate_image(self, refined_prompt: str, source_prompt: Optional[str] = None) -> GenerationArtifact:
        source_prompt = refined_prompt if source_prompt is None else source_prompt
        payload = await self.image_generator.generate(refined_prompt)
        if not payload:
            raise ImageGenerationError("Image generation returned an empty payload")

        name = artifact_file_name(ArtifactKind.IMAGE, source_prompt, self.max_name_length)
        path = await asyncio.to_thread(self.file_manager.save_artifact, payload, name)
        return GenerationArtifact(kind=ArtifactKind.IMAGE, payload=payload, name=name,
                                  source_prompt=source_prompt, path=path)

    async def generate_model(self, image: GenerationArtifact) -> GenerationArtifact:
        payload = await self.model_generator.generate(image.payload, image.name)
        if not payload:
            raise ModelGenerationError("3D model generation returned an empty payload")

        name = artifact_file_name(ArtifactKind.MODEL, image.source_prompt, self.max_name_length)
        path = await asyncio.to_thread(self.file_manager.save_artifact, payload, name)
        return GenerationArtifact(kind=ArtifactKind.MODEL, payload=payload, name=name,
                                  source_prompt=image.source_prompt, path=path)

    async def publish(self, model: GenerationArtifact) -> PublishedAsset:
        """Copy the model to its canonical name and push it to the remote store."""
        previous_version = await self.publisher.get_version(self.remote_path)
        version = await self.publisher.upload(self.remote_path, model.payload, previous_version)

        local_path = self.file_manager.artifact_path(self.canonical_model_name)
        await asyncio.to_thread(shutil.copyfile, model.path, local_path)

        return PublishedAsset(
            artifact=model,
            local_path=local_path,
            remote_path=self.remote_path,
            url=f"{self.static_prefix}/{self.canonical_model_name}",
            previous_version=previous_version,
            version=version,
        )
