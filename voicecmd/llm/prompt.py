from voicecmd.models import Action

ACTION_VOCABULARY = [a.value for a in Action]


def _vocabulary_block() -> str:
    return "\n".join(f"- {name}" for name in ACTION_VOCABULARY)


def build_command_prompt(transcript: str) -> str:
    """
    Instruction contract for the command classifier.
    Fixes the action vocabulary, one payload shape per action,
    and the single-JSON-object reply format.
    """
    return f"""
You are a clinical voice command interpreter.
You MUST return clean JSON only (no backticks, no prose), using the action names below.

User said: "{transcript}"

Infer ONE primary action. Choose from this list ONLY:

{_vocabulary_block()}

Return JSON with:
{{
  "action": "...",
  "payload": {{ ... }}
}}

PAYLOAD RULES

1) add_vital_signs
- Commands like "BP 120 over 80, heart rate 90, spo2 96%, temp 37.5".
- Payload MUST be (numbers, or null when not said):
{{
  "systolic": number | null,
  "diastolic": number | null,
  "heartRate": number | null,
  "temperature": number | null,
  "spo2": number | null,
  "weight": number | null
}}
Example:
User: "Blood pressure 120 over 80 and pulse 90"
Payload:
{{
  "systolic": 120,
  "diastolic": 80,
  "heartRate": 90,
  "temperature": null,
  "spo2": null,
  "weight": null
}}

2) find_patient
- "open John Smith", "find patient Mary".
{{
  "name": "exact or best-effort patient name"
}}

3) Navigation (go_*)
- "go to summary", "open investigations tab", "back to dashboard", "show all patients".
- go_dashboard and go_patients are global; every other go_* opens a tab of the current patient.
- Payload MUST be an empty object: {{}}

4) add_allergy
- "Add penicillin allergy, severe anaphylaxis", "allergic to peanuts, mild rash".
{{
  "allergen": string,
  "type": "Drug" | "Food" | "Environmental" | "Other",
  "severity": "Mild" | "Moderate" | "Severe" | "Life-Threatening",
  "reaction": string,
  "notes": string | null,
  "intent": "add" | "remove"
}}
Use "intent": "add" unless the user explicitly asks to remove.

5) remove_allergy
- "Remove penicillin allergy".
{{
  "allergen": string
}}

6) add_chronic_condition
- "Add chronic condition type 2 diabetes, controlled", "hypertension, active since 2018".
{{
  "conditionName": string,
  "status": "Active" | "Controlled" | "Remission" | "Inactive",
  "diagnosisDate": string | null,
  "notes": string | null
}}
diagnosisDate is an ISO date, or null when unclear.

7) remove_chronic_condition
- "Remove chronic condition hypertension".
{{
  "conditionName": string
}}

8) add_medication / prescribe_medication
- "Start metformin one gram twice a day", "Prescribe amoxicillin 500 mg three times a day for 5 days".
- If the word "prescribe" is used, prefer prescribe_medication.
{{
  "name": string,
  "dose": string,
  "route": string,
  "frequency": string,
  "duration": string | null,
  "notes": string | null
}}

9) add_note / add_soap_note
- If the user says "SOAP note" use add_soap_note, otherwise add_note.
{{
  "text": string
}}

10) add_history / update_history / clear_history
- add_history when appending, update_history when modifying, clear_history when wiping.
add_history:    {{ "mode": "append", "text": string }}
update_history: {{ "mode": "update", "text": string }}
clear_history:  {{ "mode": "clear" }}

11) create_referral
- "Refer this patient to neurology for recurrent seizures".
{{
  "specialty": string | null,
  "reason": string | null
}}

12) suggest_specialist
- "Which specialist should I refer to for uncontrolled heart failure?"
{{
  "question": string
}}

13) unknown
- If you cannot confidently map the instruction to any action above:
{{
  "action": "unknown",
  "payload": {{}}
}}

REMINDERS:
- Return EXACTLY one top-level JSON object.
- Do NOT wrap with backticks.
- Do NOT include any explanation text.
- Keys must be in double quotes and payloads must match these shapes as closely as possible.
"""


ASSISTANT_SYSTEM_PROMPT = """
You are a clinical assistant for doctors.
Answer clinical questions concisely, in guideline style.
You must NOT invent patient data.
If you recommend contacting a colleague, name them exactly as listed in the specialist directory.
"""


def build_assistant_prompt(text: str, specialists_hint: str = "") -> str:
    prompt = ASSISTANT_SYSTEM_PROMPT
    if specialists_hint:
        prompt += f"\nSPECIALIST DIRECTORY:\n{specialists_hint}\n"
    prompt += f"\nDOCTOR:\n{text}\n"
    return prompt
