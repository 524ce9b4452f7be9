# garagehub/utils/pdf_generator.py

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.styles import ParagraphStyle
from io import BytesIO
from datetime import datetime

from garagehub.config import settings


def generate_booking_confirmation_pdf(booking) -> bytes:
    """
    Renders the confirmation a customer brings to the garage: who, where,
    when, which service and which vehicle.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=60,
        leftMargin=60,
        topMargin=50,
        bottomMargin=50
    )

    # --- CUSTOM STYLES ---
    header_style = ParagraphStyle('HeaderStyle', fontSize=14, leading=18, alignment=0, fontName='Helvetica-Bold')
    title_style = ParagraphStyle('TitleStyle', fontSize=12, leading=14, alignment=1, spaceAfter=25, fontName='Helvetica-Bold')
    body_style = ParagraphStyle('BodyStyle', fontSize=11, leading=16, alignment=4)
    footer_style = ParagraphStyle('FooterStyle', fontSize=7, leading=9, alignment=1, textColor=colors.grey)

    story = []

    # --- 1. HEADER ---
    story.append(Paragraph(settings.APP_NAME, header_style))
    story.append(Spacer(1, 30))

    # --- 2. DOCUMENT TITLE ---
    story.append(Paragraph(f"BOOKING CONFIRMATION n°{booking.id}/{booking.booking_date.year}", title_style))
    story.append(Spacer(1, 10))

    # --- 3. DATA PREPARATION ---
    garage = booking.garage
    service = booking.service
    vehicle = booking.vehicle_info or {}
    address = (garage.address or {}) if garage else {}

    vehicle_full = " ".join(str(v) for v in (vehicle.get("make"), vehicle.get("model"), vehicle.get("year")) if v) or "-"
    garage_address = ", ".join(p for p in (address.get("street"), address.get("city"), address.get("country")) if p) or "-"

    rows = [
        ["Customer", booking.car_owner.name if booking.car_owner else "-"],
        ["Garage", garage.name if garage else "-"],
        ["Address", garage_address],
        ["Service", service.name if service else "-"],
        ["Date", booking.booking_date.strftime("%d/%m/%Y")],
        ["Time", f"{booking.slot_start} - {booking.slot_end}"],
        ["Vehicle", vehicle_full],
        ["Plate", vehicle.get("license_plate") or "-"],
        ["Price", f"{service.price:,.2f} {settings.DEFAULT_CURRENCY}" if service else "-"],
        ["Paid", "Yes" if booking.is_paid else "No"],
    ]

    details = Table(rows, colWidths=[1.6 * inch, 4.4 * inch])
    details.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LINEBELOW', (0, 0), (-1, -1), 0.25, colors.lightgrey),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    story.append(details)
    story.append(Spacer(1, 25))

    # --- 4. NOTES ---
    if booking.notes:
        story.append(Paragraph(f"<b><u>Notes :</u></b> {booking.notes}", body_style))
        story.append(Spacer(1, 25))

    story.append(Paragraph(
        "Please arrive a few minutes before your time slot. To cancel, use your bookings page "
        "while the booking is still pending or approved.",
        body_style
    ))

    # --- 5. FOOTER ---
    story.append(Spacer(1, 1.5 * inch))
    story.append(Paragraph(f"Generated on {datetime.utcnow().strftime('%d/%m/%Y %H:%M')} UTC", footer_style))

    doc.build(story)
    buffer.seek(0)
    return buffer.getvalue()
