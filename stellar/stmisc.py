from functools import total_ordering
import configparser
import pathlib

"""Semantic version number for Stellar.

Major version update: Incompatible changes or big milestones.
Minor version update: Changes that are expected to affect paths/scores.
Patch version update: Report or other cosmetic changes.

Records with a different major or minor version are treated as stale.

"""
STELLAR_VERSION = (0,2,0)


"""Static paths and files"""

ROOTPATH = pathlib.Path(__file__).resolve().parent.parent
INIPATH = ROOTPATH / "stellar.ini"


class ChartFileError(Exception):
    """Just a custom error for a chart file that doesn't work."""
    pass


class ChartDataError(ValueError):
    """Chart data that breaks the model's rules (negative durations,
    inverted phrases, bad resolution, too many groups).
    """
    pass


class ScoringRules:
    """The scoring constants used by the optimizer.

    Meter values are in half-percent units, so the default meter runs from
    0 to 200 and a phrase is worth 25%.

    Every attribute can be overridden by keyword, or from the [scoring]
    section of an ini file.

    """
    FIELDS = (
        'note_points',
        'sustain_points_per_beat',
        'max_meter',
        'phrase_gain',
        'activation_threshold',
        'drain_per_bar',
        'max_multiplier',
        'combo_step',
        'sp_multiplier',
        'max_groups',
    )

    def __init__(
        self,
        note_points=50,
        sustain_points_per_beat=25,
        max_meter=200,
        phrase_gain=50,
        activation_threshold=100,
        drain_per_bar=50,
        max_multiplier=4,
        combo_step=10,
        sp_multiplier=2,
        max_groups=100000,
    ):
        self.note_points = note_points
        self.sustain_points_per_beat = sustain_points_per_beat
        self.max_meter = max_meter
        self.phrase_gain = phrase_gain
        self.activation_threshold = activation_threshold
        self.drain_per_bar = drain_per_bar
        self.max_multiplier = max_multiplier
        self.combo_step = combo_step
        self.sp_multiplier = sp_multiplier
        self.max_groups = max_groups

        self._validate()

    def _validate(self):
        for key in self.FIELDS:
            value = getattr(self, key)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"Scoring rule {key} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"Scoring rule {key} must not be negative, got {value}")

        if self.max_meter == 0:
            raise ValueError("Scoring rule max_meter must be positive")
        if self.combo_step == 0:
            raise ValueError("Scoring rule combo_step must be positive")
        if self.max_multiplier == 0:
            raise ValueError("Scoring rule max_multiplier must be positive")
        if self.activation_threshold > self.max_meter:
            raise ValueError(
                f"Activation threshold {self.activation_threshold} is above "
                f"the meter cap {self.max_meter}"
            )

    def __eq__(self, other):
        if not isinstance(other, ScoringRules):
            return NotImplemented
        return all(getattr(self, k) == getattr(other, k) for k in self.FIELDS)

    def __repr__(self):
        values = ', '.join(f"{k}={getattr(self, k)}" for k in self.FIELDS)
        return f"ScoringRules({values})"

    def as_dict(self):
        return {k: getattr(self, k) for k in self.FIELDS}

    def to_multiplier(self, combo):
        """Combo multiplier for the group at this 0-based combo ordinal."""
        return min(self.max_multiplier, 1 + combo // self.combo_step)

    @staticmethod
    def from_config(cfg):
        """Rules from a ConfigParser (or a path to an ini file).

        Keys missing from the [scoring] section keep their defaults.
        Unknown keys are an error so that typos don't go unnoticed.
        """
        if not isinstance(cfg, configparser.ConfigParser):
            path = cfg
            cfg = configparser.ConfigParser()
            try:
                with open(path, 'r', encoding='utf-8') as cfgfile:
                    cfg.read_file(cfgfile)
            except FileNotFoundError:
                return ScoringRules()

        if 'scoring' not in cfg:
            return ScoringRules()

        overrides = {}
        for key in cfg['scoring']:
            if key not in ScoringRules.FIELDS:
                raise ValueError(f"Unknown scoring rule in config: {key}")
            try:
                overrides[key] = cfg['scoring'].getint(key)
            except ValueError:
                raise ValueError(f"Scoring rule {key} is not an integer: {cfg['scoring'][key]}")

        return ScoringRules(**overrides)


DEFAULT_RULES = ScoringRules()


@total_ordering
class Timecode:
    """A point in time in a chart, in multiple representations.

    The absolute way to measure time in charts is with ticks, but reports
    want measures, beats, or milliseconds.

    Timecodes are created with a tick value and chart context; the rest of
    the values are derived. Measure/beat/tick values are integers,
    milliseconds are a float.

    """
    def __init__(self, ticks, chart):
        self.ticks = ticks

        self.measure_beats_ticks = (0, 0, 0)
        self.ms = 0.0

        if chart is not None:
            self._init_mbt(chart)
            self._init_ms(chart)

    def _init_mbt(self, chart):
        """Walk the chart's meter to find the measure/beat/tick position of
        self.ticks.

        Whole measures are counted first, then whole beats; what is left
        stays as ticks.
        """
        tpm_changes = chart.tpm_changes()
        keys = sorted(tpm_changes.keys())

        measures = 0
        handled_ticks = 0
        current_tpm = tpm_changes[keys[0]]

        # Advance through each section that ends before our tick
        for tick_key in keys[1:]:
            if tick_key > self.ticks:
                break
            section = tick_key - handled_ticks
            # A signature change mid-measure still starts a new measure
            measures += -(-section // current_tpm)
            handled_ticks = tick_key
            current_tpm = tpm_changes[tick_key]

        remaining = self.ticks - handled_ticks
        measures += remaining // current_tpm
        remaining %= current_tpm

        beats = remaining // chart.resolution
        ticks = remaining % chart.resolution

        self.measure_beats_ticks = (measures, beats, ticks)

    def _init_ms(self, chart):
        """Walk the chart's tempo map to derive milliseconds."""
        bpm_changes = chart.bpm_changes()
        keys = sorted(bpm_changes.keys())

        def to_tps(bpm):
            return bpm * chart.resolution / 60

        handled_ticks = 0
        tps = to_tps(bpm_changes[keys[0]])
        for tick_key in keys[1:]:
            if tick_key >= self.ticks:
                break
            self.ms += (tick_key - handled_ticks) / tps * 1000
            handled_ticks = tick_key
            tps = to_tps(bpm_changes[tick_key])

        self.ms += (self.ticks - handled_ticks) / tps * 1000

    def __eq__(self, other):
        return self.ticks == other.ticks

    def __lt__(self, other):
        return self.ticks < other.ticks

    def __hash__(self):
        return self.ticks

    def __repr__(self):
        return str(self.ticks)

    def is_measure_start(self):
        return self.measure_beats_ticks[1] == self.measure_beats_ticks[2] == 0

    def measurestr(self, fixed_width=False):
        m, b, t = self.measure_beats_ticks
        if fixed_width:
            return f"{f'm{m+1}': >5}.{b + 1}.{t: <3}"
        else:
            return f"m{m + 1}.{b + 1}.{t}"

    def timestr(self):
        seconds = self.ms / 1000
        return f"{int(seconds // 60)}:{seconds % 60:06.3f}"
