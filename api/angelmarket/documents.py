"""PDF rendering for signed NDAs and SAFE term sheets.

Pages are drawn with reportlab; a completed SAFE is sealed by appending a
certificate page with pypdf and hashing the final bytes.
"""
import logging
from io import BytesIO

from pypdf import PdfReader, PdfWriter
from reportlab.lib.pagesizes import A4, letter
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from .config import APP_NAME, NDA_TERM_YEARS
from .utils import b64png_to_bytes, canonical_json, sha256_bytes, utcnow

logger = logging.getLogger(__name__)

NDA_TEMPLATE = f"""NON-DISCLOSURE AGREEMENT

This Non-Disclosure Agreement ("Agreement") is entered into as of the date of electronic signature below.

BETWEEN:
{APP_NAME} ("Disclosing Party")
AND
The undersigned individual or entity ("Receiving Party")

1. PURPOSE
The Receiving Party wishes to receive access to confidential startup project information, including but not limited to business plans, financial projections, technical specifications, and intellectual property ("Confidential Information") for the purpose of evaluating potential investment opportunities.

2. CONFIDENTIAL INFORMATION
"Confidential Information" includes all information disclosed by the Disclosing Party or project developers through the {APP_NAME} platform, whether oral, written, or in any other form, that is designated as confidential or that reasonably should be understood to be confidential.

3. OBLIGATIONS
The Receiving Party agrees to:
a) Hold all Confidential Information in strict confidence;
b) Not disclose Confidential Information to any third party without prior written consent;
c) Use Confidential Information solely for evaluating investment opportunities;
d) Not copy, reproduce, or distribute Confidential Information except as necessary for evaluation;
e) Protect Confidential Information using the same degree of care used to protect their own confidential information, but no less than reasonable care.

4. EXCLUSIONS
This Agreement does not apply to information that:
a) Is or becomes publicly available through no fault of the Receiving Party;
b) Was known to the Receiving Party prior to disclosure;
c) Is independently developed by the Receiving Party without use of Confidential Information;
d) Is disclosed with the written approval of the Disclosing Party;
e) Is required to be disclosed by law or court order.

5. TERM
This Agreement shall remain in effect for a period of {NDA_TERM_YEARS} years from the date of signing.

6. NO LICENSE
Nothing in this Agreement grants the Receiving Party any license or rights to any intellectual property of the Disclosing Party or project developers.

7. RETURN OF INFORMATION
Upon request, the Receiving Party shall promptly return or destroy all Confidential Information and any copies thereof.

8. REMEDIES
The Receiving Party acknowledges that any breach of this Agreement may cause irreparable harm, and the Disclosing Party shall be entitled to seek equitable relief, including injunction, in addition to any other remedies available at law.

9. GOVERNING LAW
This Agreement shall be governed by and construed in accordance with applicable laws.

10. ELECTRONIC SIGNATURE
The parties agree that electronic signatures shall be legally binding and have the same force and effect as handwritten signatures.

BY SIGNING BELOW, THE RECEIVING PARTY ACKNOWLEDGES THAT THEY HAVE READ, UNDERSTAND, AND AGREE TO BE BOUND BY THE TERMS OF THIS AGREEMENT.
"""

NDA_TEMPLATE_HASH = sha256_bytes(NDA_TEMPLATE.encode("utf-8"))

SAFE_KEY_TERMS = """1. CONVERSION EVENTS
This SAFE will automatically convert into equity upon:
- Equity Financing: a bona fide transaction with the primary purpose of raising capital
- Liquidity Event: a change of control, IPO, or direct listing
- Dissolution Event: voluntary or involuntary termination of the Company

2. CONVERSION MECHANICS
Upon an Equity Financing, the Investor will receive the greater of:
- Shares based on the Valuation Cap price, or
- Shares based on the Discount Rate applied to the price per share

3. REPRESENTATIONS
Both parties represent they have the authority to enter into this agreement and that this investment complies with applicable securities laws."""

MARGIN = 56

class _Page:
    """Top-down text cursor over a reportlab canvas with page breaks."""

    def __init__(self, buf: BytesIO, pagesize=A4):
        self.c = canvas.Canvas(buf, pagesize=pagesize)
        self.width, self.height = pagesize
        self.y = self.height - MARGIN

    def _room(self, needed: float):
        if self.y - needed < MARGIN:
            self.c.showPage()
            self.y = self.height - MARGIN

    def title(self, text: str, size: int = 18):
        self._room(size + 8)
        self.c.setFont("Helvetica-Bold", size)
        self.c.drawCentredString(self.width / 2, self.y, text)
        self.y -= size + 8

    def heading(self, text: str):
        self._room(22)
        self.y -= 6
        self.c.setFont("Helvetica-Bold", 12)
        self.c.drawString(MARGIN, self.y, text)
        self.y -= 16

    def paragraph(self, text: str, font: str = "Helvetica", size: int = 10, leading: float = 13):
        usable = self.width - 2 * MARGIN
        for raw in text.split("\n"):
            lines = simpleSplit(raw, font, size, usable) or [""]
            for line in lines:
                self._room(leading)
                self.c.setFont(font, size)
                self.c.drawString(MARGIN, self.y, line)
                self.y -= leading

    def pair(self, left: str, right: str, size: int = 10):
        self._room(size + 6)
        self.c.setFont("Helvetica", size)
        self.c.drawString(MARGIN, self.y, left)
        self.c.drawString(self.width / 2, self.y, right)
        self.y -= size + 6

    def signature(self, data: str | None, x: float, w: float = 160, h: float = 50) -> bool:
        if not data:
            return False
        try:
            image = ImageReader(BytesIO(b64png_to_bytes(data)))
        except Exception:
            logger.warning("signature image could not be decoded; rendering name only")
            return False
        self._room(h + 4)
        self.c.drawImage(image, x, self.y - h, width=w, height=h, mask="auto")
        self.y -= h + 4
        return True

    def finish(self):
        self.c.showPage()
        self.c.save()

def _fmt_date(value, with_time: bool = False) -> str:
    if not value:
        return ""
    return value.strftime("%B %d, %Y %H:%M:%S UTC" if with_time else "%B %d, %Y")

def render_nda_pdf(nda, investor) -> bytes:
    buf = BytesIO()
    page = _Page(buf)
    page.title("NON-DISCLOSURE AGREEMENT")
    page.y -= 8
    body = NDA_TEMPLATE.split("\n", 2)[2]
    body = body.replace(
        "The undersigned individual or entity",
        investor.full_name or "The undersigned individual or entity",
        1,
    )
    page.paragraph(f"Effective date: {_fmt_date(nda.signed_at)}")
    page.paragraph(body)

    page.heading("RECEIVING PARTY SIGNATURE")
    page.signature(nda.signature_data, MARGIN)
    page.paragraph(f"Name: {nda.signed_name}")
    page.paragraph(f"Email: {investor.email}")
    page.paragraph(f"Signed: {_fmt_date(nda.signed_at, with_time=True)}")
    page.paragraph(f"Expires: {_fmt_date(nda.expires_at)}")
    page.paragraph(f"IP Address: {nda.ip_address or 'n/a'}")
    page.paragraph(f"Document Version: {nda.version}")
    page.paragraph(f"Document SHA-256: {nda.document_hash}", size=8, leading=10)
    page.y -= 10
    page.paragraph(
        f"This document was electronically signed via the {APP_NAME} platform. "
        "The signature data is securely stored and this document serves as proof of agreement.",
        font="Helvetica-Oblique", size=8, leading=10,
    )
    page.finish()
    return buf.getvalue()

def render_safe_pdf(term_sheet, offer, project, investor, developer) -> bytes:
    buf = BytesIO()
    page = _Page(buf)
    page.title("SAFE", size=20)
    page.paragraph("Simple Agreement for Future Equity", size=12, leading=16)
    page.y -= 6

    page.heading("PARTIES")
    page.pair(f"Company: {developer.company_name or developer.full_name}", f"Investor: {investor.full_name}")

    page.heading("INVESTMENT TERMS")
    page.pair("Project:", project.title)
    page.pair("Investment Amount:", f"${term_sheet.investment_amount:,.2f}")
    if term_sheet.valuation_cap > 0:
        page.pair("Valuation Cap:", f"${term_sheet.valuation_cap:,.2f}")
    if term_sheet.discount_rate > 0:
        page.pair("Discount Rate:", f"{term_sheet.discount_rate:.1f}%")
    page.pair("Pro-Rata Rights:", "Yes" if term_sheet.pro_rata_rights else "No")
    page.pair("MFN Clause:", "Yes" if term_sheet.mfn_clause else "No")
    if offer.equity_request:
        page.pair("Equity Requested:", f"{offer.equity_request:.2f}%")

    page.heading("KEY TERMS")
    page.paragraph(SAFE_KEY_TERMS, size=9, leading=12)

    page.heading("SIGNATURES")
    for label, user, signature, signed_at in (
        ("COMPANY", developer, term_sheet.developer_signature, term_sheet.developer_signed_at),
        ("INVESTOR", investor, term_sheet.investor_signature, term_sheet.investor_signed_at),
    ):
        page.paragraph(label, font="Helvetica-Bold")
        page.signature(signature, MARGIN)
        page.paragraph(f"Signed: {_fmt_date(signed_at)}" if signature else "Pending signature")
        page.paragraph(user.full_name)
        if user.company_name:
            page.paragraph(user.company_name)
        page.y -= 8

    page.paragraph(
        f"This document was generated via the {APP_NAME} platform. "
        "Electronic signatures are legally binding under applicable e-signature laws.",
        font="Helvetica-Oblique", size=8, leading=10,
    )
    page.finish()
    return buf.getvalue()

def _append_certificate(writer: PdfWriter, audit: dict):
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(72, 750, "Certificate of Completion")
    c.setFont("Helvetica", 10)
    y = 720
    for k, v in audit.items():
        line = f"{k}: {v}"
        c.drawString(72, y, line[:95])
        y -= 14
        if y < 72:
            c.showPage(); y = 750
    c.showPage(); c.save()
    buf.seek(0)
    for page in PdfReader(buf).pages:
        writer.add_page(page)

def seal_pdf(original_pdf_bytes: bytes, audit: dict) -> tuple[bytes, str]:
    reader = PdfReader(BytesIO(original_pdf_bytes))
    writer = PdfWriter()
    for page in reader.pages:
        writer.add_page(page)

    _append_certificate(writer, {
        **audit,
        "sha256_original": sha256_bytes(original_pdf_bytes),
        "sealed_at": utcnow().isoformat(),
    })

    out_buf = BytesIO()
    writer.write(out_buf)
    final_bytes = out_buf.getvalue()
    return final_bytes, sha256_bytes(final_bytes)

def build_sealed_safe(term_sheet, offer, project, investor, developer) -> tuple[bytes, str]:
    rendered = render_safe_pdf(term_sheet, offer, project, investor, developer)
    audit = {
        "term_sheet_id": term_sheet.id,
        "offer_id": offer.id,
        "project": project.title,
        "investor": f"{investor.full_name} <{investor.email}>",
        "investor_signed_at": term_sheet.investor_signed_at.isoformat() if term_sheet.investor_signed_at else "",
        "investor_ip": term_sheet.investor_ip or "n/a",
        "company": f"{developer.full_name} <{developer.email}>",
        "company_signed_at": term_sheet.developer_signed_at.isoformat() if term_sheet.developer_signed_at else "",
        "company_ip": term_sheet.developer_ip or "n/a",
        "terms": canonical_json({
            "investment_amount": term_sheet.investment_amount,
            "valuation_cap": term_sheet.valuation_cap,
            "discount_rate": term_sheet.discount_rate,
            "pro_rata_rights": term_sheet.pro_rata_rights,
            "mfn_clause": term_sheet.mfn_clause,
        }),
    }
    final_bytes, sha_final = seal_pdf(rendered, audit)
    logger.info("sealed SAFE for term sheet %s sha256=%s", term_sheet.id, sha_final)
    return final_bytes, sha_final
