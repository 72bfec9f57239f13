"""
certificate.py — Certificate message and PDF rendering
======================================================
  render_certificate_message(learner_name, course_title, percentage, completion_date)
      → (subject, html_body)

  generate_certificate_pdf(learner_name, course_title, percentage, completion_date)
      → bytes (A4 landscape PDF, starts with %PDF)
"""

from __future__ import annotations

import html
import io
import textwrap
from datetime import date, datetime
from typing import Optional, Union

CERTIFICATE_TITLE   = "Internship Completion Certificate"
CERTIFICATE_SUBJECT = "Your Internship Certificate"
PDF_FILENAME        = "Certificate.pdf"


def _ordinal_date(value: Optional[Union[date, datetime]]) -> str:
    """Format a date with an ordinal suffix, e.g. "14th September 2025"."""
    d = value or date.today()
    day = d.day
    if 11 <= day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix} {d.strftime('%B %Y')}"


def render_certificate_message(
    learner_name: str,
    course_title: str,
    percentage: float,
    completion_date: Optional[Union[date, datetime]] = None,
) -> tuple[str, str]:
    """Return the subject and HTML body of the certificate e-mail."""
    name  = html.escape(learner_name)
    title = html.escape(course_title)
    body = textwrap.dedent(f"""
    <html>
    <body style="font-family:Segoe UI,Arial,sans-serif;color:#1f2937;">
      <h2 style="color:#5C2D91;">Congratulations {name}!</h2>
      <p>You have successfully completed the course <b>{title}</b>
         with an overall score of <b>{percentage:.2f}%</b>.</p>
      <p>Completion date: {_ordinal_date(completion_date)}</p>
      <p>Please find your {CERTIFICATE_TITLE} attached or available in your dashboard.</p>
      <p style="margin-top:24px;font-size:0.8rem;color:#888;">EduRoom</p>
    </body>
    </html>
    """).strip()
    return CERTIFICATE_SUBJECT, body


def _rl_colour(hex_str: str):
    """Convert a CSS hex colour string to a reportlab Color."""
    from reportlab.lib import colors as rl_colors
    h = hex_str.lstrip("#")
    if len(h) == 3:
        h = "".join(c * 2 for c in h)
    r, g, b = int(h[0:2], 16) / 255, int(h[2:4], 16) / 255, int(h[4:6], 16) / 255
    return rl_colors.Color(r, g, b)


def generate_certificate_pdf(
    learner_name: str,
    course_title: str,
    percentage: float,
    completion_date: Optional[Union[date, datetime]] = None,
) -> bytes:
    """
    Build the completion certificate PDF.
    Returns raw PDF bytes.
    """
    from reportlab.lib.enums import TA_CENTER
    from reportlab.lib.pagesizes import A4, landscape
    from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
    from reportlab.lib.units import cm
    from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=landscape(A4),
        leftMargin=2.5 * cm, rightMargin=2.5 * cm,
        topMargin=2.5 * cm, bottomMargin=2.5 * cm,
        title=CERTIFICATE_TITLE,
    )

    styles = getSampleStyleSheet()
    PURPLE = _rl_colour("#5C2D91")
    DARK   = _rl_colour("#1f2937")
    MUTED  = _rl_colour("#6b7280")

    title = ParagraphStyle("CertTitle", parent=styles["Title"],
                           textColor=PURPLE, fontSize=28, leading=34, alignment=TA_CENTER)
    body  = ParagraphStyle("CertBody", parent=styles["Normal"],
                           textColor=DARK, fontSize=16, leading=24, alignment=TA_CENTER)
    name  = ParagraphStyle("CertName", parent=body, fontSize=24, leading=30,
                           fontName="Helvetica-Bold")
    small = ParagraphStyle("CertSmall", parent=body, textColor=MUTED, fontSize=11, leading=14)

    story = [
        Paragraph(CERTIFICATE_TITLE, title),
        Spacer(1, 0.6 * cm),
        HRFlowable(width="60%", color=PURPLE, thickness=1.5, hAlign="CENTER"),
        Spacer(1, 1.0 * cm),
        Paragraph("This is to certify that", body),
        Spacer(1, 0.4 * cm),
        Paragraph(html.escape(learner_name), name),
        Spacer(1, 0.4 * cm),
        Paragraph("has successfully completed the course", body),
        Paragraph(f"<b>{html.escape(course_title)}</b>", body),
        Spacer(1, 0.4 * cm),
        Paragraph(f"with an overall score of {percentage:.2f}%", body),
        Spacer(1, 1.2 * cm),
        Paragraph(f"Date: {_ordinal_date(completion_date)}", small),
    ]
    doc.build(story)
    return buf.getvalue()
