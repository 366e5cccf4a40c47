"""Certificate document rendering.

HTML from a Jinja2 template, converted to PDF with WeasyPrint. Rendering is
CPU-bound and synchronous, so it runs in a worker thread.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Protocol
from uuid import UUID

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from src.training.exceptions import GenerationFailedError
from src.training.models import TrainingModule, UserProfile


logger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
PDF_MAGIC = b"%PDF"


class CertificateRenderer(Protocol):
    async def render(
        self,
        profile: UserProfile,
        module: TrainingModule,
        certificate_id: UUID,
        issued_at: datetime,
    ) -> bytes: ...


class WeasyPrintCertificateRenderer:
    """Renders certificates as PDF documents."""

    def __init__(self, issuer_name: str, template_name: str = "certificate.html"):
        self.issuer_name = issuer_name
        self.template_name = template_name
        self._env = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            autoescape=select_autoescape(["html"]),
        )

    def render_html(
        self,
        profile: UserProfile,
        module: TrainingModule,
        certificate_id: UUID,
        issued_at: datetime,
    ) -> str:
        template = self._env.get_template(self.template_name)
        return template.render(
            issuer_name=self.issuer_name,
            learner_name=profile.display_name,
            module_title=module.title,
            issued_on=issued_at.strftime("%B %d, %Y"),
            certificate_id=str(certificate_id),
        )

    @staticmethod
    def _write_pdf(html: str) -> bytes:
        # Lazy import: WeasyPrint pulls in Pango/cairo bindings
        from weasyprint import HTML  # noqa: PLC0415

        return HTML(string=html).write_pdf()

    async def render(
        self,
        profile: UserProfile,
        module: TrainingModule,
        certificate_id: UUID,
        issued_at: datetime,
    ) -> bytes:
        """Render one certificate.

        Raises:
            GenerationFailedError: If the document cannot be produced
        """
        html = self.render_html(profile, module, certificate_id, issued_at)
        try:
            pdf = await asyncio.to_thread(self._write_pdf, html)
        except Exception as e:
            logger.exception(
                "certificate_render_failed",
                certificate_id=str(certificate_id),
                error=str(e),
            )
            raise GenerationFailedError(f"Certificate rendering failed: {e}") from e

        if not pdf or not pdf.startswith(PDF_MAGIC):
            raise GenerationFailedError("Certificate renderer produced no PDF document")
        return pdf
