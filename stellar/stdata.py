from . import stmisc


OPEN_NOTE_TYPE = 7


class Note:
    """Representation of a note from a chart.

    Time and duration are in chart ticks. Lane types are 0-4 (green to
    orange) and 7 is an open note. Forced/tap are modifiers that the parser
    applies after the note is created; everything else is fixed.

    """
    __slots__ = ('_time', '_type', '_duration', 'forced', 'tap')

    def __init__(self, time, type, duration=0):
        if time < 0:
            raise stmisc.ChartDataError(f"Note time must be >= 0, got {time}")
        if duration < 0:
            raise stmisc.ChartDataError(f"Note duration must be >= 0, got {duration}")

        self._time = time
        self._type = type
        self._duration = duration
        self.forced = False
        self.tap = False

    @property
    def time(self):
        return self._time

    @property
    def type(self):
        return self._type

    @property
    def duration(self):
        return self._duration

    def is_open(self):
        return self._type == OPEN_NOTE_TYPE

    def end_time(self):
        return self._time + self._duration

    def __eq__(self, other):
        if not isinstance(other, Note):
            return NotImplemented
        for attr in ['time', 'type', 'duration', 'forced', 'tap']:
            if getattr(self, attr) != getattr(other, attr):
                return False
        return True

    def __hash__(self):
        return hash((self._time, self._type, self._duration))

    def __repr__(self):
        mods = ''.join([
            ', forced' if self.forced else '',
            ', tap' if self.tap else '',
            ', open' if self.is_open() else '',
        ])
        return f"Note({self._time}, type={self._type}, duration={self._duration}{mods})"


class StarPowerPhrase:
    """A Star Power phrase window in ticks, as a half-open interval [start, end)."""
    __slots__ = ('_start', '_end')

    def __init__(self, start, end):
        if start < 0:
            raise stmisc.ChartDataError(f"Phrase start must be >= 0, got {start}")
        if end < start:
            raise stmisc.ChartDataError(f"Phrase end {end} is before its start {start}")

        self._start = start
        self._end = end

    @property
    def start(self):
        return self._start

    @property
    def end(self):
        return self._end

    def length(self):
        return self._end - self._start

    def contains_tick(self, tick):
        return self._start <= tick < self._end

    def overlaps(self, other):
        return self._start < other.end and other.start < self._end

    def __eq__(self, other):
        if not isinstance(other, StarPowerPhrase):
            return NotImplemented
        return self._start == other.start and self._end == other.end

    def __hash__(self):
        return hash((self._start, self._end))

    def __repr__(self):
        return f"StarPowerPhrase({self._start}, {self._end})"


class TimeSignature:
    """A meter change at a tick.

    The denominator is the real note value (4 for x/4, 8 for x/8), not the
    power of two that .chart files store.
    """
    __slots__ = ('tick', 'numerator', 'denominator')

    def __init__(self, tick, numerator, denominator=4):
        if tick < 0:
            raise stmisc.ChartDataError(f"Time signature tick must be >= 0, got {tick}")
        self.tick = tick
        self.numerator = numerator
        self.denominator = denominator

    def ticks_per_bar(self, resolution):
        """Ticks in one bar of this meter. Degenerate signatures count as 4/4."""
        if self.denominator <= 0:
            return resolution * 4
        return resolution * 4 * self.numerator // self.denominator

    def __eq__(self, other):
        if not isinstance(other, TimeSignature):
            return NotImplemented
        return (self.tick, self.numerator, self.denominator) == (other.tick, other.numerator, other.denominator)

    def __repr__(self):
        return f"TimeSignature({self.tick}, {self.numerator}/{self.denominator})"


class TempoChange:
    __slots__ = ('tick', 'bpm')

    def __init__(self, tick, bpm):
        if tick < 0:
            raise stmisc.ChartDataError(f"Tempo tick must be >= 0, got {tick}")
        if bpm <= 0:
            raise stmisc.ChartDataError(f"Tempo must be positive, got {bpm}")
        self.tick = tick
        self.bpm = bpm

    def __eq__(self, other):
        if not isinstance(other, TempoChange):
            return NotImplemented
        return self.tick == other.tick and self.bpm == other.bpm

    def __repr__(self):
        return f"TempoChange({self.tick}, {self.bpm} bpm)"


class ChartData:
    """The structure for charts that have been loaded in: notes, Star Power
    phrases and the tempo/meter map.

    All times are in chart ticks; resolution is ticks per quarter note.

    The optimizer assumes notes and phrases are in time order. Whoever
    fills a ChartData calls sort_by_time() when they're done.

    """
    DEFAULT_RESOLUTION = 480
    DEFAULT_BPM = 120.0

    def __init__(self, resolution=DEFAULT_RESOLUTION):
        self._resolution = None
        self.resolution = resolution

        self._notes = []
        self._phrases = []
        self._time_signatures = []
        self._tempo_changes = []

    @property
    def resolution(self):
        return self._resolution

    @resolution.setter
    def resolution(self, value):
        if value <= 0:
            raise stmisc.ChartDataError(f"Resolution must be > 0, got {value}")
        self._resolution = value

    @property
    def notes(self):
        return tuple(self._notes)

    @property
    def phrases(self):
        return tuple(self._phrases)

    @property
    def time_signatures(self):
        return tuple(self._time_signatures)

    @property
    def tempo_changes(self):
        return tuple(self._tempo_changes)

    def add_note(self, note):
        if note is None:
            raise stmisc.ChartDataError("Can't add an empty note.")
        self._notes.append(note)
        return note

    def add_phrase(self, phrase):
        if phrase is None:
            raise stmisc.ChartDataError("Can't add an empty phrase.")
        self._phrases.append(phrase)
        return phrase

    def add_time_signature(self, timesig):
        self._time_signatures.append(timesig)
        return timesig

    def add_tempo(self, tempo):
        self._tempo_changes.append(tempo)
        return tempo

    def notes_at(self, tick):
        """Notes that start exactly on this tick."""
        return [n for n in self._notes if n.time == tick]

    def sort_by_time(self):
        """Sort everything by start tick. Stable, so chords keep their
        parse order."""
        self._notes.sort(key=lambda n: n.time)
        self._phrases.sort(key=lambda p: p.start)
        self._time_signatures.sort(key=lambda ts: ts.tick)
        self._tempo_changes.sort(key=lambda t: t.tick)

    def max_tick(self):
        """Last tick reached by any note end or phrase end."""
        ends = [n.end_time() for n in self._notes] + [p.end for p in self._phrases]
        return max(ends, default=0)

    def tpm_changes(self):
        """Ticks per measure, keyed by the tick where each meter starts.
        Always has an entry at tick 0 (4/4 unless the chart says otherwise).

        Signatures that give an empty bar (numerator 0) count as 4/4 here;
        the optimizer still sees them as no drain.
        """
        changes = {0: self._resolution * 4}
        for ts in self._time_signatures:
            tpb = ts.ticks_per_bar(self._resolution)
            changes[ts.tick] = tpb if tpb > 0 else self._resolution * 4
        return changes

    def bpm_changes(self):
        """Tempo keyed by tick. Always has an entry at tick 0."""
        changes = {0: self.DEFAULT_BPM}
        for tempo in self._tempo_changes:
            changes[tempo.tick] = tempo.bpm
        return changes

    def __repr__(self):
        return (
            f"ChartData(resolution={self._resolution}, notes={len(self._notes)}, "
            f"phrases={len(self._phrases)})"
        )


class OptimalPath:
    """The best activation schedule found for a chart: the ticks where
    Star Power gets activated, in order, and the score it earns."""

    def __init__(self, activation_times, totalscore):
        self._activation_times = tuple(activation_times)
        self._totalscore = totalscore

    @property
    def activation_times(self):
        return list(self._activation_times)

    @property
    def totalscore(self):
        return self._totalscore

    def has_activations(self):
        return len(self._activation_times) != 0

    def __len__(self):
        return len(self._activation_times)

    def __eq__(self, other):
        if not isinstance(other, OptimalPath):
            return NotImplemented
        return (
            self._activation_times == other._activation_times
            and self._totalscore == other._totalscore
        )

    def __repr__(self):
        return f"OptimalPath(activation_times={list(self._activation_times)}, totalscore={self._totalscore})"
