import os
import sys
import json

import stellar.stlog as stlog
import stellar.stmisc as stmisc
import stellar.strecord as strecord
import stellar.stutil as stutil


def run_folder(charts_root, outfile, rules=stmisc.DEFAULT_RULES):
    """Analyze every chart under charts_root and save a JSON book keyed by
    chart hash. Returns (records saved, charts that failed)."""
    book = {}
    failures = []

    charts, errors = stutil.discover_charts([charts_root])
    for e in errors:
        print(f"\t{e}")

    print(f"\nFound {len(charts)} charts in '{charts_root}'.\n")

    records_count = 0
    for chartfile, inifile, dirname in charts:
        print(f"{chartfile}")

        try:
            name, artist, charter = stutil.get_metadata(inifile)
            sthash = stutil.chart_hash(chartfile)
            chart, record = stutil.analyze_chart(chartfile, rules)
        except (stmisc.ChartFileError, OSError) as e:
            print(f"\tSkipping: {e}")
            failures.append(chartfile)
            continue

        print(f"\t{record.basescore} -> {record.optimalscore} ({record.improvement_pct():.1f}%)")

        if sthash not in book:
            book[sthash] = {
                'ref_name': name,
                'ref_artist': artist,
                'ref_charter': charter,
                'ref_path': os.path.relpath(dirname, charts_root),

                'records': {},
            }

        book[sthash]['records'][os.path.basename(chartfile)] = record
        records_count += 1

    with open(outfile, mode='w', encoding='utf-8') as output_json:
        json.dump(book, output_json, default=strecord.json_save, separators=(',', ':'))

    return records_count, failures


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python stellar_runfolder.py <charts folder> [config.ini]")
        sys.exit(1)

    stlog.configure()

    charts_root = sys.argv[1]
    rules = stmisc.ScoringRules.from_config(sys.argv[2] if len(sys.argv) > 2 else stmisc.INIPATH)

    outfile_name = "runfolder_output.json"
    os.makedirs('output', exist_ok=True)
    outfile = os.path.join('output', outfile_name)

    records_count, failures = run_folder(charts_root, outfile, rules)

    print(f"\nFinished saving {records_count} records to {outfile}")
    if failures:
        print(f"{len(failures)} chart(s) could not be analyzed.")
