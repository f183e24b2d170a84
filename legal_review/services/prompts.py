"""
Prompt text for the analysis engines.

Every adapter sends the same prompts; only the transport differs. The JSON
schemas embedded here mirror the payload models in legal_review/schemas.py.
"""

from legal_review.schemas import ContractType

JSON_ONLY = "You MUST respond with valid JSON only, with no markdown, explanations or preamble."


NDA_EXTRACTION_SCHEMA = """{
  "parties": ["Party A name", "Party B name"],
  "effective_date": "YYYY-MM-DD or null",
  "termination_date": "YYYY-MM-DD or null",
  "clauses": [
    {
      "clause_type": "definition_of_confidential_info",
      "title": "Definition of Confidential Information",
      "text": "exact quoted text",
      "section_reference": "Section X",
      "importance": "high|medium|low"
    },
    { "clause_type": "obligations_of_receiving_party", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "exclusions", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "term_and_duration", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "return_of_materials", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "remedies", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "non_solicitation", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "governing_law", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "dispute_resolution", "title": "...", "text": "...", "section_reference": "...", "importance": "..." }
  ],
  "contract_type": "nda"
}"""

SERVICE_AGREEMENT_EXTRACTION_SCHEMA = """{
  "parties": ["Service Provider name", "Client name"],
  "effective_date": "YYYY-MM-DD or null",
  "termination_date": "YYYY-MM-DD or null",
  "clauses": [
    { "clause_type": "scope_of_services", "title": "Scope of Services", "text": "...", "section_reference": "...", "importance": "high" },
    { "clause_type": "payment_terms", "title": "Payment Terms", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "term_and_termination", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "indemnification", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "limitation_of_liability", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "intellectual_property", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "confidentiality", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "warranties", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "force_majeure", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "governing_law", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "dispute_resolution", "title": "...", "text": "...", "section_reference": "...", "importance": "..." }
  ],
  "contract_type": "service_agreement"
}"""

LEASE_EXTRACTION_SCHEMA = """{
  "parties": ["Landlord name", "Tenant name"],
  "effective_date": "YYYY-MM-DD or null",
  "termination_date": "YYYY-MM-DD or null",
  "clauses": [
    { "clause_type": "premises_description", "title": "Premises", "text": "...", "section_reference": "...", "importance": "high" },
    { "clause_type": "rent_and_payment", "title": "Rent", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "security_deposit", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "lease_term", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "maintenance_and_repairs", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "use_restrictions", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "insurance_requirements", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "termination_and_renewal", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "default_and_remedies", "title": "...", "text": "...", "section_reference": "...", "importance": "..." },
    { "clause_type": "governing_law", "title": "...", "text": "...", "section_reference": "...", "importance": "..." }
  ],
  "contract_type": "lease"
}"""

RISK_ASSESSMENT_SCHEMA = """{
  "overall_score": 45,
  "risk_level": "medium",
  "flags": [
    {
      "category": "indemnification|liability|termination|non_compete|confidentiality|payment|governing_law|other",
      "severity": "high|medium|low",
      "description": "Clear description of the risk",
      "clause_reference": "Section X or null",
      "suggestion": "Recommended action to mitigate"
    }
  ],
  "summary": "2-3 sentence risk overview"
}"""

COMPARISON_SCHEMA = """{
  "differences": [
    {
      "category": "parties|payment|term|liability|indemnification|confidentiality|termination|other",
      "diff_type": "substantive|formatting",
      "description": "What changed and why it matters",
      "text_a": "Exact text from document A or null",
      "text_b": "Exact text from document B or null",
      "significance": "high|medium|low"
    }
  ],
  "summary": "Overall comparison summary"
}"""

EXTRACTION_SCHEMAS = {
    ContractType.NDA: NDA_EXTRACTION_SCHEMA,
    ContractType.SERVICE_AGREEMENT: SERVICE_AGREEMENT_EXTRACTION_SCHEMA,
    ContractType.LEASE: LEASE_EXTRACTION_SCHEMA,
}


def extraction_system_prompt(contract_type: ContractType) -> str:
    return (
        f"You are a legal document analysis expert specializing in {contract_type.display_name}. "
        f"Extract key clauses and terms from the provided contract text. {JSON_ONLY}"
    )


def extraction_user_prompt(text: str, contract_type: ContractType) -> str:
    return f"""Analyze the following {contract_type.display_name} and extract all key clauses.

RULES:
1. Quote exact text from the document, do not paraphrase
2. Use null for any clause or field not found in the document
3. Respond with ONLY the JSON object below and no other text

JSON Schema:
{EXTRACTION_SCHEMAS[contract_type]}

DOCUMENT TEXT:
---
{text}
---"""


def risk_system_prompt() -> str:
    return (
        "You are a legal risk assessment expert. Analyze the extracted clauses "
        f"and identify potential risks. {JSON_ONLY}"
    )


def risk_user_prompt(extraction_json: str, contract_type: ContractType) -> str:
    return f"""Analyze the following extracted clauses from a {contract_type.display_name} and provide a risk assessment.

RULES:
1. Score overall risk 0-100 (0=no risk, 100=extreme risk)
2. Set risk_level to "low" (0-33), "medium" (34-66), or "high" (67-100)
3. Flag specific issues with severity, description, and fix suggestions
4. Common risks: missing indemnification cap, one-sided termination, auto-renewal traps, broad non-compete, unlimited liability, missing governing law
5. Respond with ONLY the JSON object below and no other text

JSON Schema:
{RISK_ASSESSMENT_SCHEMA}

EXTRACTED CLAUSES:
---
{extraction_json}
---"""


def comparison_system_prompt() -> str:
    return (
        "You are a legal document comparison expert. Compare two contract versions "
        f"and categorize differences. {JSON_ONLY}"
    )


def comparison_user_prompt(text_a: str, text_b: str, contract_type: ContractType) -> str:
    return f"""Compare these two versions of a {contract_type.display_name} and identify all differences.

RULES:
1. Categorize each difference as "substantive" or "formatting"
2. Rate significance as "high", "medium", or "low"
3. Quote exact text from each document
4. Respond with ONLY the JSON object below and no other text

JSON Schema:
{COMPARISON_SCHEMA}

DOCUMENT A:
---
{text_a}
---

DOCUMENT B:
---
{text_b}
---"""


def summary_system_prompt() -> str:
    return (
        "You are a legal document summarizer. Write a concise, client-ready executive "
        "summary. Respond with plain text only, no JSON and no markdown headers."
    )


def summary_user_prompt(extraction_json: str, risk_json: str) -> str:
    return f"""Write a 2-3 paragraph executive summary of this contract review for a client.

Include:
1. Key parties and terms
2. Notable clauses and their implications
3. Risk highlights and recommended actions

Keep it professional, concise, and actionable.

EXTRACTED CLAUSES:
{extraction_json}

RISK ASSESSMENT:
{risk_json}"""
