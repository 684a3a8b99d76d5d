"""
PDF certificate of erasure
Renders one certificate per wiped device next to its text report
"""

import hashlib
import getpass
import logging
import platform
import socket
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .models import Device, PassResult, format_duration
from .report_writer import WIPE_STANDARD, TIMESTAMP_FORMAT

logger = logging.getLogger(__name__)

TOOL_VERSION = "1.0.0"

TABLE_STYLE = TableStyle([
    ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
    ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
    ('FONTSIZE', (0, 0), (-1, -1), 9),
    ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
    ('FONTNAME', (2, 0), (2, -1), 'Helvetica-Bold'),
])

@dataclass
class CertificateData:
    """Everything printed on a certificate"""
    device: Device
    started_at: datetime
    finished_at: datetime
    success: bool
    pass_results: List[PassResult] = field(default_factory=list)
    verification: str = "Not Performed"
    report_path: str = ""
    operator: str = field(default_factory=getpass.getuser)
    hostname: str = field(default_factory=socket.gethostname)

    @property
    def certificate_id(self) -> str:
        return f"CERT_{self.device.name}_{self.started_at.strftime('%Y%m%d_%H%M%S')}"

    @property
    def checksum(self) -> str:
        """SHA-256 over the identifying fields"""
        data = f"{self.certificate_id}{self.device.serial}{self.started_at}{self.finished_at}{self.success}"
        return hashlib.sha256(data.encode()).hexdigest()

class CertificateGenerator:
    """Builds reportlab PDF certificates"""

    def __init__(self, output_dir: str):
        self.output_dir = Path(output_dir)
        self.styles = getSampleStyleSheet()
        self._setup_pdf_styles()

    def _setup_pdf_styles(self):
        self.styles.add(ParagraphStyle(
            name='CertTitle',
            parent=self.styles['Title'],
            fontSize=18,
            textColor=colors.HexColor('#000080'),
            spaceAfter=20,
            alignment=TA_CENTER
        ))
        self.styles.add(ParagraphStyle(
            name='SectionHeader',
            parent=self.styles['Heading2'],
            fontSize=11,
            textColor=colors.white,
            backColor=colors.HexColor('#4472C4'),
            leftIndent=3,
            rightIndent=3,
            spaceBefore=8,
            spaceAfter=8
        ))

    def _table(self, rows):
        table = Table(rows, colWidths=[1.5*inch, 2*inch, 1.5*inch, 2*inch])
        table.setStyle(TABLE_STYLE)
        return table

    def generate_pdf_certificate(self, data: CertificateData) -> str:
        """Write the PDF and return its path"""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.output_dir / f"{data.certificate_id}.pdf"

        doc = SimpleDocTemplate(
            str(filepath),
            pagesize=letter,
            rightMargin=0.5*inch,
            leftMargin=0.5*inch,
            topMargin=0.5*inch,
            bottomMargin=0.5*inch
        )

        device = data.device
        duration = (data.finished_at - data.started_at).total_seconds()
        story = [
            Paragraph("CERTIFICATE OF MEDIA SANITIZATION", self.styles['CertTitle']),
            Paragraph(f"Certificate ID: {data.certificate_id}", self.styles['Normal']),
            Spacer(1, 0.2*inch),
            Paragraph("DEVICE INFORMATION", self.styles['SectionHeader']),
            self._table([
                ["Device Path:", device.path, "Bus:", device.bus_type.name],
                ["Vendor:", device.vendor_name, "Model:", device.model_name],
                ["Serial Number:", device.serial, "Capacity:", device.size_formatted],
            ]),
            Spacer(1, 0.2*inch),
            Paragraph("SANITIZATION DETAILS", self.styles['SectionHeader']),
            self._table([
                ["Standard:", WIPE_STANDARD, "Passes:", str(len(data.pass_results))],
                ["Start Time:", data.started_at.strftime(TIMESTAMP_FORMAT),
                 "End Time:", data.finished_at.strftime(TIMESTAMP_FORMAT)],
                ["Duration:", format_duration(duration), "Verification:", data.verification],
                ["Status:", "SUCCESS" if data.success else "FAILED", "Report:", Path(data.report_path).name],
            ]),
            Spacer(1, 0.2*inch),
        ]

        if data.pass_results:
            story.append(Paragraph("PASSES", self.styles['SectionHeader']))
            rows = [["Pass", "Pattern", "Duration", "Result"]]
            for result in data.pass_results:
                rows.append([
                    str(result.overwrite_pass.number),
                    result.overwrite_pass.description,
                    format_duration(result.duration_seconds),
                    "OK" if result.success else "FAILED",
                ])
            story.append(self._table(rows))
            story.append(Spacer(1, 0.2*inch))

        story.append(Paragraph("SYSTEM INFORMATION", self.styles['SectionHeader']))
        story.append(self._table([
            ["Operator:", data.operator, "Hostname:", data.hostname],
            ["Platform:", platform.system(), "Version:", platform.release()],
            ["Tool Version:", TOOL_VERSION, "Checksum:", data.checksum[:16] + "..."],
        ]))

        doc.build(story)
        logger.info(f"PDF certificate generated: {filepath}")
        return str(filepath)

def generate_wipe_certificate(output_dir: str, data: CertificateData) -> Optional[str]:
    """Generate a certificate, returning None when rendering fails"""
    try:
        return CertificateGenerator(output_dir).generate_pdf_certificate(data)
    except OSError as e:
        logger.error(f"Could not write certificate for {data.device.path}: {e}")
        return None
