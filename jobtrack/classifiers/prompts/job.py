"""
Prompts for job application emails.

Templates are filled with str.format(sender=..., subject=..., body=...).
"""

# Trusted sources: the message is known to be about an application, extract only
EXTRACT_PROMPT = """You analyze job application emails for a candidate.
The email below comes from a known job platform. Extract the application details.

STATUS RULES:
- SENT: acknowledgement of receipt, application sent confirmation
- VIEWED: the application or profile was viewed by the recruiter
- INTERVIEW: invitation to an interview, a call or a technical test
- OFFER: job offer, contract proposal
- REJECTED: rejection, application not retained, position filled

If the company name is not in the email, use the name in the "From" field.
If the position is not in the email, use "Not specified".

Return ONLY valid JSON (no markdown, no explanation):
{{
  "company": "Hiring company name",
  "position": "Job title",
  "status": "SENT | VIEWED | INTERVIEW | OFFER | REJECTED",
  "confidence": 0.0 to 1.0
}}

Email:
---
From: {sender}
Subject: {subject}
Body:
{body}
---"""

# Unknown sources: decide relevance first, then extract
CLASSIFY_AND_EXTRACT_PROMPT = """You analyze emails to decide whether they concern a job application made by the candidate.

STEP 1: Decide if the email is about one of the candidate's job applications.
YES for: application acknowledgement, application viewed notice, interview invitation, offer, rejection.
NO for: newsletters, social notifications, promotions, services unrelated to a job application.

STEP 2: If it is, extract the application details.

STATUS RULES: SENT (acknowledged), VIEWED (viewed), INTERVIEW (interview), OFFER (offer), REJECTED (rejection).

Return ONLY valid JSON (no markdown, no explanation):
{{
  "isJobRelated": true/false,
  "company": "Company name (or 'N/A' if not related)",
  "position": "Job title (or 'Not specified')",
  "status": "SENT | VIEWED | INTERVIEW | OFFER | REJECTED",
  "confidence": 0.0 to 1.0
}}

Email:
---
From: {sender}
Subject: {subject}
Body:
{body}
---"""
