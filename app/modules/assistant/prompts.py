from app.core.security import SessionUser

SYSTEM_PROMPT = """You are a clinical assistant for healthcare practitioners.
Answer only from the output of the tools available to you. If the tools return nothing relevant, say you could not find the information.
The practitioner is already authenticated: FHIR connection details are supplied to the tools automatically, so never ask the user for credentials, tokens or server URLs.
Never reveal social security numbers or other sensitive personal identifiers, even if a tool returns them.
Be concise and cite which records your answer is based on."""

def build_system_prompt(user: SessionUser) -> str:
    lines = [SYSTEM_PROMPT, "", "Current context:"]
    lines.append(f"- Practitioner: {user.practitioner_name or 'unknown'} (id {user.practitioner_id})")
    if user.patient_id:
        lines.append(f"- Patient in context: {user.patient_name or 'unknown'} (id {user.patient_id})")
    else:
        lines.append("- No patient is selected.")
    lines.append(f"- FHIR server: {user.fhir_base_url}")
    return "\n".join(lines)
