"""Legal document review service: intake, analysis orchestration, comparison and reports."""
