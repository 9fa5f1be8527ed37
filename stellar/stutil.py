import os
import configparser
import hashlib
import logging

from . import stpath
from . import strecord
from . import stsong
from . import stmisc


logger = logging.getLogger(__name__)


CHART_FILENAMES = ["notes.mid", "notes.chart"]


def discover_charts(rootfolders):
    """Returns a list of tuples (chartfile, inifile, chartfolder) and a list
    of encountered errors. inifile is None when the folder has no song.ini.

    Recursively searches for charts in the given root folders.
    """
    unexplored = list(rootfolders)

    found_by_dirname = {}
    errors = []
    visited = set()
    while unexplored:
        f = unexplored.pop()

        if os.path.isfile(f):
            dirname, base = os.path.split(f)

            if base in CHART_FILENAMES:
                i = 0
            elif base == "song.ini":
                i = 1
            else:
                continue

            if dirname not in found_by_dirname:
                found_by_dirname[dirname] = [None, None, dirname]
            # notes.mid wins if a folder has both
            if i == 0 and found_by_dirname[dirname][0] and base != "notes.mid":
                continue
            found_by_dirname[dirname][i] = f
        else:
            # Handle a folder - add subfolders to the search
            try:
                subnames = os.listdir(f)
            except OSError as e:
                errors.append(e)
                continue

            for subname in subnames:
                subpath = os.path.join(f, subname)
                if subpath not in visited:
                    visited.add(subpath)
                    unexplored.append(subpath)

    return (
        sorted(tuple(info) for info in found_by_dirname.values() if info[0]),
        errors
    )


def chart_hash(chartfile):
    with open(chartfile, 'rb') as f:
        return hashlib.file_digest(f, "md5").hexdigest()


def get_metadata(inifile):
    """(name, artist, charter) from a song.ini, with placeholders for
    anything missing."""
    defaults = ("<unknown name>", "<unknown artist>", "<unknown charter>")
    if inifile is None:
        return defaults

    config = configparser.ConfigParser(
        strict=False, allow_no_value=True, interpolation=None
    )
    # utf-8 should work but try to do other encodings if it doesn't
    for codec in ['utf-8', 'utf-8-sig', 'latin-1']:
        try:
            config.read(inifile, encoding=codec)
            break
        except (configparser.MissingSectionHeaderError, UnicodeDecodeError):
            continue

    # Song inis have one section
    if 'Song' in config:
        metadata = config['Song']
    elif 'song' in config:
        metadata = config['song']
    else:
        raise stmisc.ChartFileError(f"Invalid ini format: {inifile}")

    return tuple(
        metadata.get(key) or default
        for key, default in zip(['name', 'artist', 'charter'], defaults)
    )


def parse_chart(filepath, instrument='ExpertSingle', difficulty='Expert', trackname='PART GUITAR'):
    """Chart file --> ChartData, picking the reader by extension."""
    if filepath.endswith(".mid"):
        parser = stsong.MidiParser(difficulty, trackname)
    elif filepath.endswith(".chart"):
        parser = stsong.ChartParser(instrument)
    else:
        raise stmisc.ChartFileError(f"Unexpected chart filetype: {filepath}")

    return parser.parsefile(filepath)


def analyze_chartdata(chart, rules=stmisc.DEFAULT_RULES):
    """The full analysis for an already parsed chart.

    ChartData --> Groups --> (base score, optimal path) --> Record.
    """
    record = strecord.AnalysisRecord()
    record.rules = rules
    record.notecount = len(chart.notes)
    record.phrasecount = len(chart.phrases)

    if not chart.notes:
        return record

    groups = stpath.prepare_groups(chart, rules)
    record.groupcount = len(groups)
    record.basescore = stpath.base_score(groups, rules)
    record.path = stpath.PathSolver(groups, rules).solve()

    if logger.isEnabledFor(logging.DEBUG):
        replay = stpath.replay_path(groups, record.path.activation_times, rules)
        for step in replay.steps:
            if step.group.phrase_complete or step.activated or step.sp_ended:
                logger.debug("%s", step)

    return record


def analyze_chart(filepath, rules=stmisc.DEFAULT_RULES, **parse_options):
    """The full process to go from chart file to record.

    Returns the parsed chart too, since reports want its tempo map.
    """
    chart = parse_chart(filepath, **parse_options)
    return chart, analyze_chartdata(chart, rules)
