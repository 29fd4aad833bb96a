def validate_payment_eligibility(completion_evidence, required_approvals, received_approvals):
    """
    Check whether completed work can be paid out.

    Evidence is complete when at least one photo and a description were
    submitted. Every required approval role must appear among the received
    ones. Returns a dict; nothing is written.
    """
    completion_evidence = completion_evidence or {}
    received = set(received_approvals or [])
    missing_roles = [role for role in (required_approvals or []) if role not in received]

    evidence_complete = bool(completion_evidence.get('photos')) and bool((completion_evidence.get('description') or '').strip())

    missing_requirements = [f"{role} approval" for role in missing_roles]
    recommended_actions = [f"Obtain {role} approval before payment release" for role in missing_roles]
    if not evidence_complete:
        missing_requirements.append("completion evidence")
        recommended_actions.append("Submit completion photos and a work description")

    return {
        'eligible': not missing_requirements,
        'missing_requirements': missing_requirements,
        'quality_score': completion_evidence.get('quality_score'),
        'evidence_complete': evidence_complete,
        'recommended_actions': recommended_actions,
    }
