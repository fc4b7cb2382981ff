"""Prompt presets and first-message builders for AI sessions."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .models import FileContent, SubjectContext

FALLBACK_SYSTEM_PROMPT = "You are a helpful assistant."

_ATTACHMENT_INSTRUCTIONS = """RECOMMENDED_ATTACHMENTS_START
- filename: [exact filename from the solicitation files] | reason: [why the vendor needs this file]
- filename: [exact filename] | reason: [why they need it]
RECOMMENDED_ATTACHMENTS_END"""

VENDOR_QUESTION_PROMPT = f"""You are an AI assistant helping a government contracting company. We are government contractors who have reached out to a business to see if they could fulfill a specific government contract/solicitation. The vendor has responded to us with a question about the contract.

We are attaching all the files of the contract/solicitation for your reference.

IMPORTANT: The vendor does NOT have access to the solicitation files. They may only have received a brief description or summary of what we need. Keep this in mind when drafting your response.

Please analyze the vendor's question in the email below and provide:

1. **Analysis:** A brief explanation of the vendor's question and where the answer can be found in the contract documents. If the answer requires information not in the documents, clearly state that and suggest where to find it.

2. **Draft Email (HTML formatted):** Draft a professional response that I can send directly to the vendor. The response should:
- Directly answer their question based on the contract documents
- Reference specific sections, clauses, or details from the solicitation where applicable
- Write the email so it makes sense even without the attachments, but reference "the attached documents" where appropriate
- Be polite, professional, and thorough
- Format the email in clean HTML wrapped in ```html fences so it is ready to copy and send

3. **Recommended Attachments:** After the HTML draft, output a section with EXACTLY this format (write "none" inside the block if nothing should be attached):

{_ATTACHMENT_INSTRUCTIONS}

List which solicitation files from our folder should be attached to this email so the vendor has the context they need to understand our response."""

FULL_PARTIAL_QUOTE_PROMPT = f"""You are an AI assistant helping a government contracting company analyze vendor quotes/proposals. We are government contractors who have sent solicitations to businesses, and a vendor has responded with a quote or proposal.

We are attaching all the files of the contract/solicitation for your reference.

IMPORTANT: The vendor does NOT have access to the solicitation files. They may only have received a brief description or summary of what we need.

Please analyze whether this vendor's response is a FULL QUOTE or a PARTIAL QUOTE:
- FULL QUOTE: Covers all line items, requirements, and specifications in the solicitation
- PARTIAL QUOTE: Only covers some of the items or requirements

Provide a detailed breakdown of:
1. What items/requirements are covered in the quote
2. What items/requirements are missing (if any)
3. Your assessment: FULL or PARTIAL quote
4. Any concerns or notes about the quote's completeness

If it is a PARTIAL QUOTE, provide TWO things:

A) **Draft Email (HTML formatted):** Thank them for their quote, clearly list the missing line items or requirements, and politely request pricing/details for them. Wrap the email in ```html fences.

B) **Recommended Attachments:** After the HTML draft, output a section with EXACTLY this format (write "none" inside the block if nothing should be attached):

{_ATTACHMENT_INSTRUCTIONS}

List which solicitation files from our folder should be attached so the vendor has the context they need to complete their quote."""

DRAFT_FORMAT_PROMPT = """You are an AI assistant helping format and improve a draft email for a government contracting company.

Please:
1. Fix grammar, spelling, and punctuation
2. Improve professional tone and clarity
3. Keep the original intent, information, and meaning intact
4. Output the improved email as HTML wrapped in ```html fences

IMPORTANT: this email will be sent through Gmail:
- Use ONLY simple inline styles if needed (no <style> blocks, no CSS classes)
- Use simple elements: <p>, <br>, <b>, <strong>, <em>, <i>, <ul>, <ol>, <li>, <a>, <table>
- Keep formatting minimal and clean

SIGNATURE & OPT-OUT LINE:
- The account's signature and opt-out line are provided below the draft.
- If the draft does NOT already contain the opt-out line, add it near the end of the email BEFORE the signature.
- If the draft does NOT already contain the signature, add it at the very end.
- Do NOT duplicate them if they already exist in the draft."""


@dataclass(frozen=True)
class PromptPreset:
    id: str
    label: str
    description: str
    system_prompt: str
    kind: str = "email"


VENDOR_QUESTION = "vendor-question"
FULL_PARTIAL_QUOTE = "full-partial-quote"
DRAFT_FORMAT = "draft-format"

PRESETS: dict[str, PromptPreset] = {
    VENDOR_QUESTION: PromptPreset(
        id=VENDOR_QUESTION,
        label="Answer Vendor Question",
        description="Draft a response to a vendor's question about a contract",
        system_prompt=VENDOR_QUESTION_PROMPT,
    ),
    FULL_PARTIAL_QUOTE: PromptPreset(
        id=FULL_PARTIAL_QUOTE,
        label="Check Full or Partial Quote",
        description="Analyze if a vendor's quote covers all or some items",
        system_prompt=FULL_PARTIAL_QUOTE_PROMPT,
    ),
    DRAFT_FORMAT: PromptPreset(
        id=DRAFT_FORMAT,
        label="Format Draft",
        description="Clean up a draft and add the signature and opt-out line",
        system_prompt=DRAFT_FORMAT_PROMPT,
        kind="draft",
    ),
}


_FILES_RULE = "=" * 40


def _file_sections(
    file_contents: Sequence[FileContent], uploaded_files: Sequence[FileContent]
) -> str:
    text = ""
    if file_contents:
        text += f"\n\n{_FILES_RULE}\nSOLICITATION / CONTRACT FILES\n{_FILES_RULE}"
        for item in file_contents:
            text += f"\n\n--- File: {item.name} ---\n"
            if item.error:
                text += f"[Error loading file: {item.error}]"
            else:
                text += item.text or "[Empty file]"
    if uploaded_files:
        text += "\n\n--- Additional Uploaded Files ---"
        for item in uploaded_files:
            text += f"\n\n📎 File: {item.name}\n{item.text}"
    return text


def build_email_message(
    ctx: SubjectContext,
    file_contents: Sequence[FileContent] = (),
    uploaded_files: Sequence[FileContent] = (),
) -> str:
    """First user message for a vendor email.

    ``file_contents`` carries the folder's extracted text for providers that
    cannot take file references; ``uploaded_files`` are added for every provider.
    """
    text = (
        "Here is the vendor's email:\n\n"
        f"From: {ctx.sender or 'Unknown'}\n"
        f"To: {ctx.recipient}\n"
        f"Subject: {ctx.subject or '(no subject)'}\n"
        f"Date: {ctx.date}\n\n"
        f"{ctx.body or '(no content)'}"
    )
    return text + _file_sections(file_contents, uploaded_files)


def build_draft_message(ctx: SubjectContext) -> str:
    """First user message for a draft, carrying signature and opt-out line."""
    text = (
        "Here is the draft email to format:\n\n"
        f"Subject: {ctx.subject or '(no subject)'}\n"
        f"To: {ctx.recipient or '(no recipient)'}\n"
        f"From: {ctx.sender}\n\n"
        f"{ctx.body or '(empty draft)'}"
    )
    if ctx.signature:
        text += f"\n\n---\nSIGNATURE FOR THIS ACCOUNT:\n{ctx.signature}"
    if ctx.opt_out_line:
        text += f"\n\nOPT-OUT LINE:\n{ctx.opt_out_line}"
    return text


def build_context_message(
    preset_id: str | None,
    ctx: SubjectContext,
    file_contents: Sequence[FileContent] = (),
    uploaded_files: Sequence[FileContent] = (),
) -> str:
    preset = PRESETS.get(preset_id or "")
    if preset is not None and preset.kind == "draft":
        return build_draft_message(ctx)
    return build_email_message(ctx, file_contents, uploaded_files)
