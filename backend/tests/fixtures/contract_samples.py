"""Sample contract emails, addendum pages and stored contract payloads.

The samples follow the layout of signed ProDBX contract emails: a location
block in the plain-text body and the order items table (class "pos") in
the HTML body.
"""

from email.message import EmailMessage

ORIGINAL_CONTRACT_URL = "https://l1.prodbx.com/go/view/?35000.426.20250301093000"
ADDENDUM_URL = "https://l1.prodbx.com/go/view/?35587.426.20251112100816"

CONTRACT_TEXT = """Signed contract received

Order Id: 1041
DBX Customer Id: 9682
Client: Ely Przybyl
Address: 1041 Temple terrace
City: Austin
State: TX
Zip: 78701
"""

CONTRACT_HTML = """<html><body>
<div><strong>Original Contract:</strong> <a href="%(original)s">View Contract</a></div>
<div><strong>Addendums:</strong> <a href="%(addendum)s">Addendum 1</a></div>
<table class="pos">
<tr><td>DESCRIPTION</td><td>QTY</td><td>EXTENDED</td></tr>
<tr><td><span style="font-weight: bold">Pool Construction</span></td><td>1</td><td>$10,000.00</td></tr>
<tr class="ssg_title"><td>Excavation</td></tr>
<tr><td style="padding-left: 30px">Dig hole</td><td>2</td><td>$4,000.00</td></tr>
<tr><td style="padding-left: 30px">Haul dirt</td><td>1 ea</td><td>$6,000.00</td></tr>
<tr><td>Subtotal</td><td></td><td>$10,000.00</td></tr>
</table>
<p>-OPTIONAL PACKAGE 1- Spa Upgrade</p>
</body></html>
""" % {"original": ORIGINAL_CONTRACT_URL, "addendum": ADDENDUM_URL}

ADDENDUM_HTML = """<html><body>
<h2>Addendum #7</h2>
<table class="pos">
<tr><td>Description</td><td>Qty</td><td>Extended</td></tr>
<tr><td><strong>0020 Calimingo - Pools and Spas</strong></td><td>1</td><td>$900.00</td></tr>
<tr class="ssg_title"><td>Decking</td></tr>
<tr><td>Extra pavers</td><td>10</td><td>$1,200.00</td></tr>
<tr><td>Credit for tile</td><td>1</td><td>-$300.00</td></tr>
<tr><td>Removed item</td><td>1</td><td>$0.00</td></tr>
<tr><td>Subtotal</td><td></td><td>$900.00</td></tr>
</table>
</body></html>
"""


# Newer ProDBX layout: "NNNN Calimingo" category cells with a #666 top border
# and two-cell subheaders styled with a #BBB top border.
NEW_LAYOUT_HTML = """<table class="pos">
<tr><td>DESCRIPTION</td><td>QTY</td><td>EXTENDED</td></tr>
<tr><td style="border-top:solid 1px #666; padding-top:8px">0020 Calimingo - Pools and Spas<br><em>R2</em></td><td>1</td><td>$8,400.00</td></tr>
<tr><td style="padding-left: 30px">Plaster finish</td><td>1</td><td>$6,000.00</td></tr>
<tr><td></td><td style="border-top:solid 1px %(border)s; letter-spacing:2px"><strong>TILE</strong></td><td></td></tr>
<tr><td style="padding-left: 30px">Waterline tile</td><td>40 sf</td><td>$2,400.00</td></tr>
<tr><td>Subtotal</td><td></td><td>$8,400.00</td></tr>
</table>
"""

BASE64_TRACKED_URL = (
    "https://l2511a.prodbx.com/go?l=426-427947-"
    "aHR0cHM6Ly9sMS5wcm9kYnguY29tL2dvL3ZpZXcvPzMzMDQ3LjQyNi4yMDI1MDgwMTEzMjkwNi4%3D"
)
POSTMARK_TRACKED_URL = (
    "https://track.pstmrk.it/3ts/l1.prodbx.com%2Fgo%2Fview%2F%3F33048.426.20250802090000./jrqS/AQ/x1"
)

TRACKED_LINKS_HTML = """<html><body>
<div><strong>Original Contract:</strong> <a href="%(original)s">View Contract</a></div>
<div><strong>Addendums:</strong> <a href="%(addendum)s">Addendum 2</a></div>
</body></html>
""" % {"original": BASE64_TRACKED_URL, "addendum": POSTMARK_TRACKED_URL}


def build_eml(html=CONTRACT_HTML, text=CONTRACT_TEXT, subject="Signed Contract - Order #1041") -> bytes:
    """Multipart/alternative contract email as raw .eml bytes."""
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = "ProDBX <noreply@prodbx.com>"
    msg["To"] = "office@example.com"
    msg["Date"] = "Tue, 04 Mar 2025 14:05:00 -0800"
    msg.set_content(text)
    if html is not None:
        msg.add_alternative(html, subtype="html")
    return msg.as_bytes()


def contract_items():
    """Stored item rows matching the sample email (grand total 10,000)."""
    return [
        {"type": "maincategory", "product_service": "Pool Construction:"},
        {
            "type": "subcategory",
            "product_service": "Excavation",
            "main_category": "Pool Construction:",
        },
        {
            "type": "item",
            "product_service": "Dig hole",
            "qty": 2,
            "rate": 2000,
            "amount": 4000,
            "main_category": "Pool Construction:",
            "sub_category": "Excavation",
        },
        {
            "type": "item",
            "product_service": "Haul dirt",
            "qty": 1,
            "rate": 6000,
            "amount": 6000,
            "main_category": "Pool Construction:",
            "sub_category": "Excavation",
        },
    ]


def contract_payload(
    dbx_customer_id="9682",
    order_no="1041",
    client_name="Ely Przybyl",
    order_grand_total=10000.0,
    sales_rep=None,
    items=None,
    addendums=None,
):
    """Body of POST /contracts."""
    return {
        "customer": {
            "dbx_customer_id": dbx_customer_id,
            "client_name": client_name,
            "email": "ely@example.com",
            "street_address": "1041 Temple terrace",
            "city": "Austin",
            "state": "TX",
            "zip": "78701",
        },
        "order": {
            "order_no": order_no,
            "order_grand_total": order_grand_total,
            "balance_due": order_grand_total,
            "sales_rep": sales_rep,
        },
        "items": contract_items() if items is None else items,
        "addendums": addendums or [],
    }
