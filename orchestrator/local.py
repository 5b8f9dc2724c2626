import asyncio
from typing import Optional, Sequence

from content_generation_service.outline import OutlineSynthesizer
from design_generation_service.assembler import DeckAssembler
from image_generation_service.worker import ImageWorker
from orchestrator.sources import ExportSink, ImageSource, OutlineSource, TemplateSource
from shared.errors import CapabilityUnavailableError
from shared.models import OutlineResult, Slide, StyleTheme, TemplateStyle
from template_analysis_service.analyzer import TemplateAnalyzer


class LocalPipeline(OutlineSource, ImageSource, TemplateSource, ExportSink):
    """Runs the synthesizer, worker, analyzer and assembler in-process instead of over HTTP."""

    def __init__(
        self,
        synthesizer: OutlineSynthesizer,
        worker: ImageWorker,
        analyzer: Optional[TemplateAnalyzer] = None,
        assembler: Optional[DeckAssembler] = None,
    ):
        self.synthesizer = synthesizer
        self.worker = worker
        self.analyzer = analyzer
        self.assembler = assembler or DeckAssembler()

    async def fetch_outline(
        self,
        topic: str,
        page_count: int,
        template_style: Optional[TemplateStyle] = None,
    ) -> OutlineResult:
        return await self.synthesizer.synthesize(topic, page_count, template_style)

    async def acquire_image(
        self,
        prompt: str,
        theme: Optional[StyleTheme] = None,
        template_style: Optional[TemplateStyle] = None,
    ) -> str:
        return await self.worker.acquire_image(prompt, theme, template_style)

    async def analyze_template(self, image_base64: str) -> TemplateStyle:
        if self.analyzer is None:
            raise CapabilityUnavailableError("Template analysis is not configured.")
        return await self.analyzer.analyze(image_base64)

    async def export(
        self,
        slides: Sequence[Slide],
        title: str,
        template_style: Optional[TemplateStyle] = None,
        theme: Optional[StyleTheme] = None,
    ) -> bytes:
        return await asyncio.to_thread(self.assembler.assemble, slides, title, template_style, theme)
