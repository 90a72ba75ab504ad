"""Extraction prompt and response schema for Spanish accounting documents.

RESPONSE_FIELDS is the single contract between the prompt, the Gemini
response schema and the normalizer in extraction.py.
"""

RESPONSE_FIELDS: tuple[str, ...] = (
    "document_type",
    "document_number",
    "date",
    "supplier",
    "concept",
    "tax_base",
    "taxes",
    "total",
)

_JSON_SUFFIX = """

CRITICAL OUTPUT RULES:
- Return ONLY a single valid JSON object. No other text before or after.
- Do NOT include any thinking, preamble, explanation, or markdown formatting.
- Do NOT wrap in code fences. Just raw JSON.
- If a field is not readable or not present, use an empty string for text and 0 for amounts."""

EXTRACTION_PROMPT = """You are an expert Spanish accountant analyzing a business document
(ticket, factura, albarán or presupuesto).
Extract the following fields and return them as a JSON object.
Use EXACTLY these keys:

{
  "document_type": "one of TICKET, FACTURA, ALBARAN, PRESUPUESTO, OTRO",
  "document_number": "invoice/ticket number as printed (Nº factura, Nº ticket, Nº albarán)",
  "date": "issue date in DD/MM/YYYY format (Fecha)",
  "supplier": "name of the issuing company (Proveedor / razón social)",
  "concept": "short summary of what was bought, max 10 words (Concepto)",
  "tax_base": "taxable base as a number with dot decimals, e.g. 100.00 (Base imponible)",
  "taxes": "total VAT/IGIC amount as a number, e.g. 21.00 (IVA / cuota)",
  "total": "total amount payable as a number, e.g. 121.00 (Total)"
}

Important:
- A simplified invoice (factura simplificada) from a shop or restaurant is a TICKET
- If only the total is printed, set tax_base and taxes to 0
- Amounts must be plain numbers without currency symbols or thousands separators""" + _JSON_SUFFIX

# Gemini responseSchema (OpenAPI subset) for schema-constrained output
RESPONSE_SCHEMA: dict = {
    "type": "OBJECT",
    "properties": {
        "document_type": {
            "type": "STRING",
            "enum": ["TICKET", "FACTURA", "ALBARAN", "PRESUPUESTO", "OTRO"],
        },
        "document_number": {"type": "STRING"},
        "date": {"type": "STRING"},
        "supplier": {"type": "STRING"},
        "concept": {"type": "STRING"},
        "tax_base": {"type": "NUMBER"},
        "taxes": {"type": "NUMBER"},
        "total": {"type": "NUMBER"},
    },
    "required": list(RESPONSE_FIELDS),
}
