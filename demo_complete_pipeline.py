#!/usr/bin/env python3
"""
Complete Pipeline Demo: Survey → Edits → Validation → Paths → CSV

Shows the full workflow:
1. Build the example customer feedback survey
2. Apply edits and paste display logic
3. Validate logic references
4. Trace respondent paths
5. Export to CSV and import it back
"""

from sflm.analyzer import analyze_survey
from sflm.backends import generate_csv
from sflm.csv_parser import parse_csv_string
from sflm.edits import AddQuestion, SetGlobalAutoAdvance, apply_edits
from sflm.examples import build_customer_feedback_survey
from sflm.model import QuestionType
from sflm.paste import paste_display_logic
from sflm.validator import validate_logic


def main():
    print("=" * 80)
    print("COMPLETE PIPELINE DEMO: Survey → Edits → Validation → Paths → CSV")
    print("=" * 80)

    # =========================================================================
    # STEP 1: Build survey
    # =========================================================================
    print("\n1. BUILDING SURVEY...")
    survey = build_customer_feedback_survey()
    print(f"   ✓ Loaded survey: {survey.title}")
    print(f"   ✓ Blocks: {len(survey.blocks)}")
    print(f"   ✓ Questions: {len([q for q in survey.iter_questions() if q.qid])}")

    # =========================================================================
    # STEP 2: Edit
    # =========================================================================
    print("\n2. EDITING SURVEY...")
    notices = []
    survey = apply_edits(survey, [
        AddQuestion("block3", QuestionType.TEXT_ENTRY, text="Anything we could do better?"),
        SetGlobalAutoAdvance(True),
    ], notify=notices.append)
    survey = paste_display_logic(survey, "q4", 'Q1 equals "No"')
    print(f"   ✓ Questions after edit: {len([q for q in survey.iter_questions() if q.qid])}")
    for notice in notices:
        print(f"      - {notice}")

    # =========================================================================
    # STEP 3: Validate
    # =========================================================================
    print("\n3. VALIDATING LOGIC...")
    issues = validate_logic(survey)
    print(f"   ✓ Issues: {len(issues)}")
    for issue in issues:
        print(f"      - {issue.question_id} [{issue.type}] {issue.message}")

    # =========================================================================
    # STEP 4: Paths
    # =========================================================================
    print("\n4. TRACING PATHS...")
    report = analyze_survey(survey)
    bids = {b.id: b.bid for b in survey.blocks}
    print(f"   ✓ Completion time: {report.completion_time}")
    for path in report.paths:
        print(f"   ✓ {path.name}: {' -> '.join(bids[b] for b in path.block_ids)} "
              f"({path.question_count} questions, {path.completion_time})")
    for warning in report.warnings:
        print(f"      - {warning}")

    # =========================================================================
    # STEP 5: CSV
    # =========================================================================
    print("\n5. CSV EXPORT / IMPORT:")
    print("-" * 80)
    content = generate_csv(survey)
    lines = content.splitlines()
    for line in lines[:6]:
        print(f"   {line}")
    if len(lines) > 6:
        print(f"   ... ({len(lines) - 6} more lines)")

    imported = parse_csv_string(content, survey_title=survey.title)
    print(f"\n   ✓ Re-imported blocks: {[b.bid for b in imported.blocks]}")
    print(f"   ✓ Stable export: {generate_csv(imported) == content}")

    print("\n" + "=" * 80)
    print("PIPELINE COMPLETE!")
    print("=" * 80)


if __name__ == "__main__":
    main()
