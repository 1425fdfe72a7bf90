from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal


@dataclass(frozen=True)
class TemplateColors:
    primary: str
    secondary: str
    accent: str
    background: str
    text: str


@dataclass(frozen=True)
class InvoiceTemplate:
    id: str
    name: str
    description: str
    colors: TemplateColors
    layout: Literal["standard", "compact", "modern", "minimal"]
    logo_position: Literal["left", "right", "center"]
    show_borders: bool
    show_header_border: bool
    show_footer_border: bool
    font_family: str
    corner_style: Literal["square", "rounded", "pill"]
    line_item_style: Literal["alternating", "bordered", "minimal"]

    @property
    def preview(self) -> str:
        return f"/templates/{self.id}.png"


INVOICE_TEMPLATES: Final[tuple[InvoiceTemplate, ...]] = (
    InvoiceTemplate(
        id="professional",
        name="Professional",
        description="A clean, professional template with a subtle color scheme",
        colors=TemplateColors("#2563eb", "#e5e7eb", "#1e40af", "#ffffff", "#1f2937"),
        layout="standard",
        logo_position="left",
        show_borders=True,
        show_header_border=True,
        show_footer_border=True,
        font_family="Inter, sans-serif",
        corner_style="rounded",
        line_item_style="alternating",
    ),
    InvoiceTemplate(
        id="modern",
        name="Modern",
        description="A modern template with a vibrant color scheme",
        colors=TemplateColors("#7c3aed", "#f3f4f6", "#5b21b6", "#ffffff", "#111827"),
        layout="modern",
        logo_position="right",
        show_borders=False,
        show_header_border=True,
        show_footer_border=False,
        font_family="Poppins, sans-serif",
        corner_style="rounded",
        line_item_style="minimal",
    ),
    InvoiceTemplate(
        id="minimal",
        name="Minimal",
        description="A minimalist template with a clean layout",
        colors=TemplateColors("#111827", "#f9fafb", "#6b7280", "#ffffff", "#374151"),
        layout="minimal",
        logo_position="center",
        show_borders=False,
        show_header_border=False,
        show_footer_border=False,
        font_family="Inter, sans-serif",
        corner_style="square",
        line_item_style="minimal",
    ),
    InvoiceTemplate(
        id="bold",
        name="Bold",
        description="A bold template with strong colors and clear sections",
        colors=TemplateColors("#ef4444", "#fee2e2", "#b91c1c", "#ffffff", "#111827"),
        layout="standard",
        logo_position="left",
        show_borders=True,
        show_header_border=True,
        show_footer_border=True,
        font_family="Roboto, sans-serif",
        corner_style="square",
        line_item_style="bordered",
    ),
    InvoiceTemplate(
        id="classic",
        name="Classic",
        description="A traditional invoice layout with a timeless design",
        colors=TemplateColors("#047857", "#ecfdf5", "#065f46", "#ffffff", "#1f2937"),
        layout="standard",
        logo_position="left",
        show_borders=True,
        show_header_border=True,
        show_footer_border=True,
        font_family="Times New Roman, serif",
        corner_style="square",
        line_item_style="bordered",
    ),
)


def get_template_by_id(template_id: str | None) -> InvoiceTemplate:
    for template in INVOICE_TEMPLATES:
        if template.id == template_id:
            return template
    return INVOICE_TEMPLATES[0]


def template_ids() -> tuple[str, ...]:
    return tuple(t.id for t in INVOICE_TEMPLATES)
