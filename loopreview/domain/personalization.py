"""
Personalization Renderer
========================

Substitutes customer/business details into user-authored templates.

Two token syntaxes are supported:
    {{customerName}} {{companyName}} {{reviewUrl}} {{rating}}
    [Name] [Company] [ReviewUrl] [Rating]      (legacy templates)

Rendering is lenient: an unknown or missing variable becomes an empty string.
Templates are written by business owners, and a typo must never block a send.
"""

import html
import re
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

DEFAULT_CUSTOMER_NAME = "Valued Customer"
DEFAULT_COMPANY_NAME = "Your Company"

LEGACY_ALIASES = {
    "Name": "customerName",
    "CustomerName": "customerName",
    "Company": "companyName",
    "CompanyName": "companyName",
    "ReviewUrl": "reviewUrl",
    "reviewUrl": "reviewUrl",
    "ReviewLink": "reviewUrl",
    "Rating": "rating",
}

# Bracket tokens outside LEGACY_ALIASES are plain text, e.g. "Reply [STOP]"
_TOKEN = re.compile(
    r"\{\{\s*(?P<var>[A-Za-z_][A-Za-z0-9_]*)\s*\}\}"
    r"|\[(?P<legacy>" + "|".join(map(re.escape, LEGACY_ALIASES)) + r")\]"
)


def build_variables(
    customer_name: Optional[str],
    company_name: Optional[str],
    review_url: Optional[str],
    rating: Optional[int] = None,
) -> dict:
    """Assemble the variable mapping with the product's defaults applied."""
    return {
        "customerName": customer_name or DEFAULT_CUSTOMER_NAME,
        "companyName": company_name or DEFAULT_COMPANY_NAME,
        "reviewUrl": review_url or "",
        "rating": rating,
    }


def render(template: Optional[str], variables: Mapping[str, object]) -> str:
    """
    Render a template. Never raises.

    Args:
        template: Template text; None renders as "".
        variables: customerName, companyName, reviewUrl, rating (any may be absent).

    Returns:
        Text with every recognised token replaced; unresolved tokens removed.
    """
    if not template:
        return ""

    def _replace(match: re.Match) -> str:
        name = match.group("var")
        if name is None:
            name = LEGACY_ALIASES[match.group("legacy")]
        value = variables.get(name) if name else None
        return "" if value is None else str(value)

    return _TOKEN.sub(_replace, str(template))


def trackable_review_url(base_url: Optional[str], customer_id, fallback: str = "") -> str:
    """
    Append the `cid` attribution parameter to a business's review URL.

    An existing query string is preserved; an existing `cid` is replaced.
    """
    if not base_url:
        return fallback
    if customer_id is None or str(customer_id) == "":
        return base_url

    parts = urlsplit(base_url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "cid"]
    query.append(("cid", str(customer_id)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def build_email_html(subject: str, body: str, variables: Mapping[str, object]) -> str:
    """HTML alternative for an automation email."""
    company = html.escape(str(variables.get("companyName") or DEFAULT_COMPANY_NAME))
    review_url = variables.get("reviewUrl") or ""
    body_html = html.escape(body or "").replace("\n", "<br>")

    button_html = ""
    if review_url:
        button_html = f"""
          <div style="text-align: center; margin: 30px 0;">
            <a href="{html.escape(str(review_url), quote=True)}"
               style="background: linear-gradient(135deg, #7c3aed 0%, #06b6d4 100%);
                      color: white; padding: 15px 30px; text-decoration: none;
                      border-radius: 25px; font-weight: bold; display: inline-block;">
              Leave a Review
            </a>
          </div>"""

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(subject or "")}</title>
</head>
<body style="margin: 0; padding: 0; background-color: #f8fafc;">
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="padding: 30px; background: #f9f9f9;">
        <div style="background: white; padding: 25px; border-radius: 8px;">
          <p style="color: #333; line-height: 1.6; margin-bottom: 20px;">{body_html}</p>{button_html}
        </div>
      </div>
      <div style="text-align: center; padding: 20px; color: #666; font-size: 12px;">
        <p>This email was sent from {company}</p>
      </div>
    </div>
</body>
</html>"""
