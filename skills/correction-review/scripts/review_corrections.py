#!/usr/bin/env python3
"""
ABOUTME: Reviews edited-document corrections against the source Word document
ABOUTME: Reports, applies in bulk, or walks corrections interactively, then saves
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from correction_review import (
    CorrectionApplier,
    DiffEngine,
    DocxDocumentStore,
    ReviewSession,
    build_corrections_for_store,
    document_offset_map,
    paragraphs_from_records,
)
from correction_review.common import (
    CONTEXT_WINDOW,
    DIFF_EDIT_COST,
    FUZZY_MATCH_THRESHOLD,
    STATUS_PENDING,
    ApplyResult,
    Correction,
    format_text_preview,
)

MODE_REPORT = 'report'
MODE_APPLY_ALL = 'apply-all'
MODE_INTERACTIVE = 'interactive'

INTERACTIVE_PROMPT = "[a]pply [r]eject [s]kip [n]ext [p]rev [q]uit > "


def load_document(path) -> Dict:
    """
    Load the edited-document JSON.

    Returns:
        Dict with 'document_title', 'document_id' and 'paragraphs' (Paragraph list)

    Raises:
        ValueError: if the file is not a document object with a paragraph list
    """
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path.name}: {e}")

    if not isinstance(data, dict) or not isinstance(data.get('paragraphs'), list):
        raise ValueError(f"{path.name}: expected an object with a 'paragraphs' list")

    return {
        'document_title': data.get('document_title', ''),
        'document_id': data.get('document_id', ''),
        'paragraphs': paragraphs_from_records(data['paragraphs']),
    }


class CorrectionReviewer:
    """Drives one review of a .docx against its edited-document JSON"""

    def __init__(self, json_file: str, source_file: str,
                 output_path: Optional[str] = None,
                 annotate: bool = True,
                 fuzzy_threshold: float = FUZZY_MATCH_THRESHOLD,
                 context_window: int = CONTEXT_WINDOW,
                 edit_cost: int = DIFF_EDIT_COST,
                 verbose: bool = False):
        self.json_path = Path(json_file)
        self.source_path = Path(source_file)
        if not self.source_path.exists():
            raise FileNotFoundError(f"Source file not found: {self.source_path}")

        if output_path:
            self.output_path = Path(output_path)
        else:
            self.output_path = self.source_path.with_stem(self.source_path.stem + '_reviewed')

        self.verbose = verbose
        self.document = load_document(self.json_path)
        self.paragraphs = self.document['paragraphs']

        self.store = DocxDocumentStore.open(self.source_path, verbose=verbose)
        self.build = build_corrections_for_store(
            self.paragraphs, self.store,
            threshold=fuzzy_threshold,
            engine=DiffEngine(edit_cost=edit_cost),
            verbose=verbose,
        )
        self.applier = CorrectionApplier(self.store, context_window=context_window, verbose=verbose)
        self.session = ReviewSession(self.applier, annotate=annotate, verbose=verbose)
        self.results: List[ApplyResult] = []

    @property
    def corrections(self) -> List[Correction]:
        return self.build.corrections

    # ---- modes -------------------------------------------------------

    def report(self):
        """Print corrections and mapping problems without touching the document"""
        offsets = document_offset_map(self.paragraphs)
        for c in self.corrections:
            doc_start = offsets.get(self.build.source_number(c), (0, 0))[0]
            print(f"  [{c.id}] P{c.paragraph_number} {c.change_type:<12} "
                  f"{c.start_offset}-{c.end_offset} (doc {doc_start + c.start_offset}): "
                  f"{c.suggestion}")
        for failure in self.build.unmapped:
            print(f"  [Unmapped] P{failure.paragraph_number} ({failure.paragraph_id}): "
                  f"'{failure.text_preview}'")
        for failure in self.build.failures:
            print(f"  [Diff failure] P{failure.paragraph_number}: {failure.error_message}")

    def apply_all(self) -> List[ApplyResult]:
        self.session.start_review(self.corrections)
        self.results = self.session.apply_all_pending()
        for r in self.results:
            if self.verbose:
                status = "✓" if r.success else "✗"
                print(f"  [{status}] {r.correction.id}: {r.correction.suggestion}", end="")
                print(f" ({r.strategy})" if r.success else f" {r.error_message}")
        return self.results

    def interactive(self, read_input: Callable[[str], str] = input) -> List[ApplyResult]:
        """Walk corrections one by one, prompting for a decision on each"""
        session = self.session
        session.start_review(self.corrections)
        while not session.is_complete():
            correction = session.current()
            if correction is None:
                # Past the end with undecided items left: go back to the first one
                first_pending = next(i for i, c in enumerate(session.corrections)
                                     if c.status == STATUS_PENDING)
                correction = session.navigate_to(first_pending)

            progress = session.progress()
            print(f"\n[{progress.current_position}/{progress.total}] "
                  f"P{correction.paragraph_number} ({correction.status}) {correction.suggestion}")
            print(f"  {format_text_preview(correction.original_text, 80)}")

            choice = read_input(INTERACTIVE_PROMPT).strip().lower()[:1]
            if choice == 'a':
                result = session.apply_current()
                self.results.append(result)
                if not result.success:
                    print(f"  [Failed] {result.error_message}")
            elif choice == 'r':
                session.reject_current()
            elif choice == 's':
                session.skip_current()
            elif choice == 'n':
                session.navigate_next()
            elif choice == 'p':
                session.navigate_previous()
            elif choice == 'q':
                break
        return self.results

    # ---- output ------------------------------------------------------

    def finish(self):
        if self.session.is_active:
            return self.session.end_review()
        return None

    def save(self, dry_run: bool = False):
        """Save modified document"""
        if dry_run:
            print(f"[DRY RUN] Would save to: {self.output_path}")
            return
        self.store.save(self.output_path)
        print(f"Saved to: {self.output_path}")

    def export_corrections(self, export_path) -> Path:
        """
        Write corrections as JSONL: one meta line, then one correction per line
        with document-level offsets added.
        """
        export_path = Path(export_path)
        offsets = document_offset_map(self.paragraphs)
        with open(export_path, 'w', encoding='utf-8') as f:
            meta_line = {
                'type': 'meta',
                'document_title': self.document['document_title'],
                'document_id': self.document['document_id'],
                'source_file': self.source_path.name,
                'generated_at': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S%z'),
                'total_count': len(self.corrections),
                'unmapped_count': len(self.build.unmapped),
            }
            json.dump(meta_line, f, ensure_ascii=False)
            f.write('\n')
            for c in self.corrections:
                data = c.to_dict()
                doc_start = offsets.get(self.build.source_number(c), (0, 0))[0]
                data['doc_start_offset'] = doc_start + c.start_offset
                data['doc_end_offset'] = doc_start + c.end_offset
                json.dump(data, f, ensure_ascii=False)
                f.write('\n')
        return export_path

    def save_failed_items(self) -> Optional[Path]:
        """
        Save failed applies to <output>_fail.jsonl.

        Returns:
            Path to failed items file if any failures exist, None otherwise
        """
        # A correction retried successfully is no longer a failure
        applied = {r.correction.id for r in self.results if r.success}
        failed_results = [r for r in self.results
                          if not r.success and r.correction.id not in applied]
        if not failed_results:
            return None

        fail_path = self.output_path.with_name(self.output_path.stem + '_fail.jsonl')
        with open(fail_path, 'w', encoding='utf-8') as f:
            meta_line = {
                'type': 'meta',
                'source_file': self.source_path.name,
                'original_export': self.json_path.name,
                'generated_at': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S%z'),
                'failed_count': len(failed_results),
                'total_count': len(self.corrections),
            }
            json.dump(meta_line, f, ensure_ascii=False)
            f.write('\n')
            for result in failed_results:
                data = result.correction.to_dict()
                data['_error'] = result.error
                data['_error_message'] = result.error_message
                data['_rolled_back'] = result.rolled_back
                json.dump(data, f, ensure_ascii=False)
                f.write('\n')
        return fail_path


# ============================================================
# Main Function
# ============================================================

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Review edited-document corrections against a Word document"
    )
    parser.add_argument('json_file', help='Edited document (JSON format)')
    parser.add_argument('source_file', help='Source Word document (.docx)')
    parser.add_argument('-o', '--output', help='Output file path (default: <source>_reviewed.docx)')
    parser.add_argument('--mode', choices=[MODE_REPORT, MODE_APPLY_ALL, MODE_INTERACTIVE],
                        default=MODE_REPORT, help='Review mode (default: report)')
    parser.add_argument('--export', help='Export corrections to a JSONL file')
    parser.add_argument('--no-annotate', action='store_true',
                        help='Do not highlight corrections while reviewing')
    parser.add_argument('--fuzzy-threshold', type=float, default=FUZZY_MATCH_THRESHOLD,
                        help=f'Word overlap needed for a fuzzy paragraph match (default: {FUZZY_MATCH_THRESHOLD})')
    parser.add_argument('--context-window', type=int, default=CONTEXT_WINDOW,
                        help=f'Context characters used to locate a correction (default: {CONTEXT_WINDOW})')
    parser.add_argument('--edit-cost', type=int, default=DIFF_EDIT_COST,
                        help=f'Diff efficiency cleanup edit cost (default: {DIFF_EDIT_COST})')
    parser.add_argument('--dry-run', action='store_true',
                        help='Review only, do not save')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')

    args = parser.parse_args()

    try:
        reviewer = CorrectionReviewer(
            args.json_file,
            args.source_file,
            output_path=args.output,
            annotate=not args.no_annotate,
            fuzzy_threshold=args.fuzzy_threshold,
            context_window=args.context_window,
            edit_cost=args.edit_cost,
            verbose=args.verbose,
        )
        build = reviewer.build

        print(f"Source file: {reviewer.source_path}")
        print(f"Paragraphs: {len(reviewer.paragraphs)} "
              f"({', '.join(f'{k}: {v}' for k, v in sorted(build.mapped.items())) or 'none mapped'})")
        print(f"Corrections: {len(build.corrections)} "
              f"({build.unchanged} unchanged, {len(build.unmapped)} unmapped, "
              f"{len(build.failures)} diff failures)")
        if args.verbose:
            print("-" * 50)

        if args.export:
            export_path = reviewer.export_corrections(args.export)
            print(f"Corrections exported to: {export_path}")

        if args.mode == MODE_REPORT:
            reviewer.report()
            return 0

        if args.mode == MODE_APPLY_ALL:
            reviewer.apply_all()
        else:
            reviewer.interactive()

        final = reviewer.finish()
        if final is not None:
            print("-" * 50)
            print(f"Completed: {final.applied} applied, {final.rejected} rejected, "
                  f"{final.skipped} skipped, {final.pending} pending")

        failed = [r for r in reviewer.results if not r.success]
        if failed:
            print("\nFailed items:")
            for r in failed:
                print(f"  - [{r.correction.id}] {r.error}: {r.error_message}")

        reviewer.save(dry_run=args.dry_run)

        fail_file = reviewer.save_failed_items()
        if fail_file:
            print(f"\n{'=' * 50}")
            print(f"Failed items saved to: {fail_file}")
            print(f"{'=' * 50}")

        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
