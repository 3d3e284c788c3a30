from ..models import PromptTemplate, TemplateCategory

# Re-seeded whenever they go missing from the store
CORE_TEMPLATE_IDS = ('core-summarize', 'core-reply', 'core-analyze')

BUILTIN_TEMPLATES = [
    PromptTemplate(
        id='core-summarize',
        name='Summarize',
        description='Basic email summary',
        template='Please provide a summary of this email.\n\n{email_body}',
        category=TemplateCategory.SUMMARIZE,
        is_favorite=True,
        is_builtin=True,
    ),
    PromptTemplate(
        id='core-reply',
        name='Draft Reply',
        description='Draft a reply to the most recent message in the thread',
        template=(
            'Draft a reply to the most recent message in this email thread.\n\n'
            'Instructions:\n'
            '- Respond ONLY to the last/most recent person who wrote\n'
            '- Read the full thread for context but reply to the latest message\n'
            '- Do NOT include: subject line, email headers, "Re:", or any name or '
            'signature/sign-off (my email signature is added automatically)\n'
            '- Start directly with the response content\n'
            '- Keep it concise and professional\n\n'
            'Email thread:\n{email_body}'
        ),
        category=TemplateCategory.REPLY,
        is_favorite=True,
        is_builtin=True,
    ),
    PromptTemplate(
        id='core-analyze',
        name='Analyze',
        description='Analyze the email',
        template='Please analyze this email.\n\n{email_body}',
        category=TemplateCategory.INSIGHTS,
        is_favorite=True,
        is_builtin=True,
    ),
    PromptTemplate(
        id='default-1',
        name='Bullet Point Summary',
        description='Summarize email as bullet points',
        template=('Summarize this email in 5 concise bullet points, highlighting the key '
                  'information and any action items:\n\n{email_body}'),
        category=TemplateCategory.SUMMARIZE,
        is_builtin=True,
    ),
    PromptTemplate(
        id='default-2',
        name='Action Items Only',
        description='Extract only action items and deadlines',
        template=('Extract ONLY the action items, tasks, and deadlines from this email. '
                  'Format as a numbered list with due dates if mentioned:\n\n{email_body}'),
        category=TemplateCategory.INSIGHTS,
        is_builtin=True,
    ),
    PromptTemplate(
        id='default-3',
        name='Professional Reply',
        description='Draft a formal, professional response',
        template=('Draft a professional and formal reply to this email. Be courteous, address '
                  'all points raised, and suggest next steps if appropriate. Only write the body '
                  'of the reply - do NOT include a subject line or email headers.\n\n'
                  'Original email from {sender}:\n{email_body}'),
        category=TemplateCategory.REPLY,
        is_builtin=True,
    ),
    PromptTemplate(
        id='default-4',
        name='Friendly Reply',
        description='Draft a warm, friendly response',
        template=('Draft a warm and friendly reply to this email. Keep a positive tone while '
                  'addressing the main points. Only write the body of the reply - do NOT include '
                  'a subject line or email headers.\n\nOriginal email from {sender}:\n{email_body}'),
        category=TemplateCategory.REPLY,
        is_builtin=True,
    ),
    PromptTemplate(
        id='default-5',
        name='TL;DR',
        description='One-sentence summary',
        template="Give me a single sentence TL;DR (too long; didn't read) summary of this email:\n\n{email_body}",
        category=TemplateCategory.SUMMARIZE,
        is_builtin=True,
    ),
    PromptTemplate(
        id='default-6',
        name='Meeting Notes',
        description='Extract meeting details and action items',
        template=('Extract meeting information from this email:\n1. Meeting date/time\n2. Attendees\n'
                  '3. Agenda items\n4. Action items with owners\n5. Follow-up required\n\n{email_body}'),
        category=TemplateCategory.INSIGHTS,
        is_builtin=True,
    ),
]
