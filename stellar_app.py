import argparse
import json
import logging
import sys

import stellar.stlog as stlog
import stellar.stmisc as stmisc
import stellar.strecord as strecord
import stellar.stutil as stutil


logger = logging.getLogger("stellar_app")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Find the highest scoring Star Power path for a chart.")
    p.add_argument("chart", help="Path to a .chart or .mid file.")

    # Parsing
    p.add_argument("--instrument", default="ExpertSingle", help=".chart section to read.")
    p.add_argument("--difficulty", default="Expert", choices=["Expert", "Hard", "Medium", "Easy"], help=".mid difficulty to read.")
    p.add_argument("--track", default="PART GUITAR", help=".mid track to read.")

    # Scoring
    p.add_argument("--config", default=str(stmisc.INIPATH), help="ini file with a [scoring] section.")

    # Output
    p.add_argument("--json", help="Also save the record as JSON here.")
    p.add_argument("-v", "--verbose", action="store_true", help="Log the path replay.")
    p.add_argument("-q", "--quiet", action="store_true")

    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    stlog.configure(args.verbose, args.quiet)

    try:
        rules = stmisc.ScoringRules.from_config(args.config)
    except ValueError as e:
        print(f"Bad config {args.config}: {e}", file=sys.stderr)
        return 2

    logger.debug("Scoring with %r", rules)

    try:
        chart, record = stutil.analyze_chart(
            args.chart, rules,
            instrument=args.instrument,
            difficulty=args.difficulty,
            trackname=args.track,
        )
    except (stmisc.ChartFileError, OSError) as e:
        print(f"Couldn't analyze {args.chart}: {e}", file=sys.stderr)
        return 1

    print(record.report(chart))

    if args.json:
        with open(args.json, mode='w', encoding='utf-8') as output_json:
            json.dump(record, output_json, default=strecord.json_save, indent=2)
        print(f"\nSaved record to {args.json}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
