"""The four capabilities a generation session depends on."""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from shared.models import OutlineResult, Slide, StyleTheme, TemplateStyle


class OutlineSource(ABC):
    @abstractmethod
    async def fetch_outline(
        self,
        topic: str,
        page_count: int,
        template_style: Optional[TemplateStyle] = None,
    ) -> OutlineResult:
        ...


class ImageSource(ABC):
    @abstractmethod
    async def acquire_image(
        self,
        prompt: str,
        theme: Optional[StyleTheme] = None,
        template_style: Optional[TemplateStyle] = None,
    ) -> str:
        """Returns an embedded data URI, or "" when the art could not be embedded."""


class TemplateSource(ABC):
    @abstractmethod
    async def analyze_template(self, image_base64: str) -> TemplateStyle:
        ...


class ExportSink(ABC):
    @abstractmethod
    async def export(
        self,
        slides: Sequence[Slide],
        title: str,
        template_style: Optional[TemplateStyle] = None,
        theme: Optional[StyleTheme] = None,
    ) -> bytes:
        ...
