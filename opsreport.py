#!/usr/bin/env python3
# opsreport.py - OpsReports Main Orchestrator
# Version 1.0 - October 2026
# Author - Infrastructure Operations Team
# Runs one, several or all report tools and maintains the run index

import os
import sys
import argparse

# Add project root to path so Tools/Reports resolve when installed as a script
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import opsfunctions as opf
from Tools.reporttypes import ReportLoader
from Tools import run_dashboard


def build_parser():
    """Command line arguments"""
    parser = argparse.ArgumentParser(prog='opsreport', description='OpsReports infrastructure report runner')
    parser.add_argument('reports', nargs='*', default=['all'],
                        help="Report ids to run, or 'all' (default)")
    parser.add_argument('--config', help='Path to config.ini')
    parser.add_argument('--output-dir', help='Directory for HTML/CSV/JSON/log output')
    parser.add_argument('--override-dir', help='Directory with site-specific <report_id>.py overrides')
    parser.add_argument('--dry-run', action='store_true',
                        help='Show what would be queried without contacting systems')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable DEBUG output')
    parser.add_argument('--reset-index', action='store_true', help="Discard today's run index before running")
    parser.add_argument('--list', action='store_true', help='List available reports and exit')
    return parser


def list_reports(loader: ReportLoader):
    for report_id, path in loader.list_available_reports().items():
        info = loader.get_report_info(report_id)
        flag = ' (explicit only)' if info.get('explicit') else ''
        print(f"{report_id:<20} {info['name']:<28} [{info['section']}] {path}{flag}")


def main(argv=None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    loader = ReportLoader(override_dir=args.override_dir)
    if args.list:
        list_reports(loader)
        return 0

    try:
        report_ids = loader.resolve(args.reports)
    except ValueError as e:
        parser.error(str(e))

    opf.init(config_file=args.config, output_dir=args.output_dir, report='opsreport', verbose=args.verbose)
    opf.write_output(f'OpsReports run: {", ".join(report_ids)}' + (' (dry run)' if args.dry_run else ''))

    if args.reset_index:
        run_dashboard.reset_index(opf.output_dir)
    for report_id in report_ids:
        run_dashboard.mark_report(opf.output_dir, report_id, loader.get_report_info(report_id)['name'],
                                  run_dashboard.RunStatus.PENDING)

    results = loader.run_reports(opf, report_ids, dry_run=args.dry_run)

    #==========================================================================
    # Run summary
    #==========================================================================

    opf.set_report('opsreport')
    failed = []
    for report_id, result in results.items():
        if isinstance(result, Exception):
            failed.append(report_id)
            opf.write_output(f'{report_id}: raised {type(result).__name__}: {result}', level='ERROR')
            continue
        status = result.overall_status
        if status == 'FAIL':
            failed.append(report_id)
        opf.write_output(f'{report_id}: {status} ({len(result.rows)} records, {len(result.errors)} errors)',
                         level={'PASS': 'PASS', 'WARN': 'WARN'}.get(status, 'ERROR'))

    index_path = os.path.join(opf.output_dir, run_dashboard.INDEX_FILE)
    opf.write_output(f'Run index: {index_path}')
    if failed:
        opf.write_output(f'{len(failed)} of {len(results)} reports failed: {", ".join(failed)}', level='ERROR')
        return 1
    opf.write_output(f'All {len(results)} reports completed', level='PASS')
    return 0


if __name__ == '__main__':
    sys.exit(main())
