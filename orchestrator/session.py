"""
One generation session: outline, then themed art for every slide, then export.

The session owns the only mutable state of a run: the slide list, the theme
and template every image request must carry, the progress figure and the
regeneration registry. Each run gets its own run_id; image results are
written only if they still belong to the current run, so a retried run is
never overwritten by late answers from the run it replaced.
"""

import asyncio
import logging
import random
import uuid
from enum import Enum
from typing import Callable, List, Optional, Tuple

from orchestrator.registry import RegenerationRegistry
from orchestrator.sources import ExportSink, ImageSource, OutlineSource
from shared.errors import InputValidationError
from shared.models import OutlineResult, Slide, StyleTheme, TemplateStyle, is_embedded_image

logger = logging.getLogger(__name__)

OUTLINE_PROGRESS = 10.0
DEFAULT_CONCURRENCY = 2
DEFAULT_JITTER = (0.5, 1.5)


class GenerationStatus(str, Enum):
    IDLE = "idle"
    OUTLINE = "outline"
    IMAGES = "images"
    DONE = "done"
    ERROR = "error"


class ImageMode(str, Enum):
    PER_SLIDE = "per_slide"
    SHARED_BACKGROUND = "shared_background"


class GenerationSession:
    def __init__(
        self,
        outline_source: OutlineSource,
        image_source: ImageSource,
        export_sink: Optional[ExportSink] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        jitter: Tuple[float, float] = DEFAULT_JITTER,
        mode: ImageMode = ImageMode.PER_SLIDE,
        sleep=asyncio.sleep,
        rng: Optional[random.Random] = None,
        on_progress: Optional[Callable[[float], None]] = None,
        on_slide_update: Optional[Callable[[Slide], None]] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.outline_source = outline_source
        self.image_source = image_source
        self.export_sink = export_sink
        self.concurrency = concurrency
        self.jitter = jitter
        self.mode = mode
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.on_progress = on_progress
        self.on_slide_update = on_slide_update

        self.status = GenerationStatus.IDLE
        self.progress = 0.0
        self.error_message = ""
        self.slides: List[Slide] = []
        self.theme: Optional[StyleTheme] = None
        self.template_style: Optional[TemplateStyle] = None
        self.topic: Optional[str] = None
        self.page_count: Optional[int] = None
        self.run_id: Optional[str] = None
        self.registry = RegenerationRegistry()

    # --- state helpers ---

    def get_slide(self, slide_id: str) -> Optional[Slide]:
        for slide in self.slides:
            if slide.id == slide_id:
                return slide
        return None

    def _set_progress(self, value: float) -> None:
        value = min(100.0, value)
        if value <= self.progress:
            return
        self.progress = value
        if self.on_progress:
            self.on_progress(value)

    def _apply_image(self, run_id: str, slide_id: str, image_url: str) -> bool:
        if run_id != self.run_id:
            logger.info(f"[{run_id}] Dropping image for slide {slide_id}: run was superseded.")
            return False
        slide = self.get_slide(slide_id)
        if slide is None:
            return False
        slide.image_url = image_url
        if self.on_slide_update:
            self.on_slide_update(slide)
        return True

    def _fail(self, run_id: str, error: BaseException) -> None:
        if run_id != self.run_id:
            return
        self.status = GenerationStatus.ERROR
        self.error_message = str(error) or error.__class__.__name__

    # --- full run ---

    async def run(
        self,
        topic: str,
        page_count: int,
        template_style: Optional[TemplateStyle] = None,
    ) -> GenerationStatus:
        run_id = uuid.uuid4().hex[:12]
        self.run_id = run_id
        self.topic, self.page_count, self.template_style = topic, page_count, template_style
        self.slides, self.theme = [], None
        self.status, self.progress, self.error_message = GenerationStatus.OUTLINE, 0.0, ""
        self.registry.clear()
        logger.info(f"[{run_id}] Starting generation for '{topic}' ({page_count} slides).")

        try:
            outline = await self.outline_source.fetch_outline(topic, page_count, template_style)
        except Exception as e:
            logger.error(f"[{run_id}] Outline generation failed: {e}")
            self._fail(run_id, e)
            return self.status
        if run_id != self.run_id:
            return self.status

        # Every placeholder exists before the first image task starts.
        self.slides = [Slide.from_outline(o, i + 1) for i, o in enumerate(outline.slides)]
        self.theme = outline.style_theme
        self.status = GenerationStatus.IMAGES
        self._set_progress(OUTLINE_PROGRESS)

        try:
            if self.mode == ImageMode.SHARED_BACKGROUND:
                await self._shared_background(run_id, outline, outline.style_theme, template_style)
            else:
                await self._fan_out(run_id, outline.style_theme, template_style)
        except Exception as e:
            logger.error(f"[{run_id}] Image phase aborted: {e}", exc_info=True)
            self._fail(run_id, e)
            return self.status

        if run_id == self.run_id:
            self.status = GenerationStatus.DONE
            self._set_progress(100.0)
            missing = sum(1 for s in self.slides if not s.image_url)
            logger.info(f"✅ [{run_id}] Generation complete, {missing} slide(s) without art.")
        return self.status

    async def retry(self) -> GenerationStatus:
        """Starts over from the outline with the last inputs, discarding any partial slides."""
        if self.topic is None or self.page_count is None:
            raise InputValidationError("There is no previous run to retry.")
        if self.status not in (GenerationStatus.ERROR, GenerationStatus.DONE):
            raise InputValidationError(f"Cannot retry while the session is in state '{self.status.value}'.")
        return await self.run(self.topic, self.page_count, self.template_style)

    async def _fan_out(self, run_id: str, theme: StyleTheme, template_style: Optional[TemplateStyle]) -> None:
        queue: asyncio.Queue = asyncio.Queue()
        for slide in self.slides:
            queue.put_nowait(slide)
        total = len(self.slides)
        completed = 0

        async def worker() -> None:
            nonlocal completed
            while True:
                try:
                    slide = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    # Desynchronize bursts between workers
                    await self.sleep(self.rng.uniform(*self.jitter))
                    image_url = await self.image_source.acquire_image(slide.image_prompt, theme, template_style)
                    self._apply_image(run_id, slide.id, image_url)
                except Exception as e:
                    logger.error(f"[{run_id}] Failed to generate image for slide {slide.page_number}: {e}")
                finally:
                    completed += 1
                    if run_id == self.run_id:
                        self._set_progress(OUTLINE_PROGRESS + completed / total * (100.0 - OUTLINE_PROGRESS))

        workers = [asyncio.create_task(worker()) for _ in range(min(self.concurrency, total))]
        await asyncio.gather(*workers)

    async def _shared_background(
        self,
        run_id: str,
        outline: OutlineResult,
        theme: StyleTheme,
        template_style: Optional[TemplateStyle],
    ) -> None:
        try:
            image_url = outline.background_image if is_embedded_image(outline.background_image) else ""
            if not image_url and self.slides:
                image_url = await self.image_source.acquire_image(self.slides[0].image_prompt, theme, template_style)
            for slide in self.slides:
                self._apply_image(run_id, slide.id, image_url)
        except Exception as e:
            logger.error(f"[{run_id}] Failed to generate the shared background: {e}")

    # --- out-of-band operations ---

    async def regenerate_slide(self, slide_id: str) -> bool:
        """
        Re-requests one slide's art with the run's theme and template.
        Returns False if the slide is already being regenerated or the new
        art could not be produced; the old image is kept in both cases.
        """
        slide = self.get_slide(slide_id)
        if slide is None:
            raise InputValidationError(f"Unknown slide: {slide_id}")
        if not self.registry.claim(slide_id):
            logger.info(f"Slide {slide_id} is already being regenerated, ignoring request.")
            return False

        run_id, theme, template_style = self.run_id, self.theme, self.template_style
        try:
            image_url = await self.image_source.acquire_image(slide.image_prompt, theme, template_style)
            if not image_url:
                logger.warning(f"[{run_id}] Regeneration of slide {slide.page_number} returned no embeddable image.")
                return False
            return self._apply_image(run_id, slide_id, image_url)
        except Exception as e:
            logger.error(f"[{run_id}] Failed to regenerate slide {slide.page_number}: {e}")
            return False
        finally:
            self.registry.release(slide_id)

    async def export(self) -> bytes:
        """Assembles the current slides. Failures leave the slides untouched."""
        if self.export_sink is None:
            raise InputValidationError("No export sink configured.")
        if not self.slides:
            raise InputValidationError("Missing required field: slides")
        return await self.export_sink.export(
            list(self.slides),
            self.topic or "Presentation",
            template_style=self.template_style,
            theme=self.theme,
        )
