from ..models import AnalysisKind

KEY_INFO_INSTRUCTION = (
    "Extract the key information from this document. Provide a concise summary with bullet "
    "points highlighting the most important facts, figures, dates, names, and action items."
)

CONNECTION_TEST_PROMPT = 'Say "Hello, I am connected!" in exactly those words.'


def get_key_info_prompt(file_name: str, file_type: str, content: str) -> str:
    return f"""{KEY_INFO_INSTRUCTION}

Document name: {file_name}
Document type: {file_type}

--- DOCUMENT CONTENT ---
{content}
--- END DOCUMENT ---

Provide key information in bullet points (max 10 bullets):"""


def get_file_analysis_prompt(content: str, kind: AnalysisKind) -> str:
    if kind == AnalysisKind.SUMMARIZE:
        return f"""Please provide a comprehensive summary of this document. Include:
1. Main topic/purpose
2. Key points and findings
3. Important details or data
4. Conclusions or recommendations (if any)

Document content:
{content}"""

    if kind == AnalysisKind.EXTRACT:
        return f"""Extract and list all key information from this document:
1. Important dates, numbers, and statistics
2. Names and organizations mentioned
3. Action items or tasks
4. Key decisions or conclusions
5. Any deadlines or time-sensitive information

Document content:
{content}"""

    return f"""Based on this document, generate 5-10 important questions that someone might have after reading it, along with the answers found in the document.

Document content:
{content}"""


def get_image_analysis_prompt(kind: AnalysisKind) -> str:
    if kind == AnalysisKind.SUMMARIZE:
        return 'Describe this image in detail. What is shown? What are the key elements?'
    if kind == AnalysisKind.EXTRACT:
        return 'Extract all text, numbers, and important information visible in this image.'
    return 'What questions might someone have about this image? Provide answers based on what you can see.'
