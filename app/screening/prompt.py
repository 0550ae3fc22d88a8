from app.core.screening_policy import get_policy_value
from app.schemas.screening import ScreeningCriteria


def min_match_score() -> int:
    return int(get_policy_value("decision.min_match_score", 60))


def build_screening_prompt(criteria: ScreeningCriteria) -> str:
    bias_check = get_policy_value("prompt.bias_check", "Yes") if criteria.filter_bias else "No"
    duplicate_check = get_policy_value("prompt.duplicate_check", "Yes") if criteria.filter_duplicates else "No"
    threshold = min_match_score()
    exp_range = f"{criteria.min_exp}-{criteria.max_exp}"

    return (
        "You are an AI Recruitment Engine. Analyze the attached resume against these strict criteria:\n\n"
        "CRITERIA:\n"
        f"1. Target Role: {criteria.role}\n"
        f"2. Experience Range: {criteria.min_exp} to {criteria.max_exp} years.\n"
        f"3. Custom Requirement: \"{criteria.custom_prompt}\"\n"
        f"4. Check for Bias: {bias_check}\n"
        f"5. Check for Duplicates: {duplicate_check}\n\n"
        "OUTPUT REQUIREMENTS:\n"
        "Return a JSON object matching this structure exactly:\n"
        "{\n"
        '    "name": "Candidate Name",\n'
        '    "role": "Current Role found in resume",\n'
        '    "experience": number (total years),\n'
        '    "matchScore": number (0-100 based on fit),\n'
        '    "status": "passed" | "failed",\n'
        '    "flags": ["list", "of", "red", "flags", "or", "bias", "issues"],\n'
        '    "agentNotes": {\n'
        f'        "screener": "Comment on experience vs requirement (e.g. \'5y matches range {exp_range}y\')",\n'
        '        "biasCheck": "Comment on any bias found or \'Clean\'",\n'
        '        "tech": "Comment on specific skill matches from custom requirement",\n'
        '        "referee": "Final short verdict"\n'
        "    }\n"
        "}\n\n"
        "Logic for Status:\n"
        f"- FAIL if experience is outside range ({exp_range}).\n"
        f"- FAIL if matchScore < {threshold}.\n"
        "- FAIL if bias detected and filterBias is true.\n"
        '- OTHERWISE "passed".\n'
    )
