"""Chart file readers.

These only turn files into ChartData; nothing in here knows about scoring.
"""
import logging
import re

import mido

from . import stdata
from . import stmisc


logger = logging.getLogger(__name__)


LANE_NOTES = (0, 1, 2, 3, 4)
FORCED_MARKER = 5
TAP_MARKER = 6
OPEN_NOTE = stdata.OPEN_NOTE_TYPE
SP_PHRASE = 2

MIDI_LANE_PITCHES = {
    'Expert': 96,
    'Hard': 84,
    'Medium': 72,
    'Easy': 60,
}
MIDI_SP_PITCH = 116


class ChartSection:
    """A [Name] { ... } block. Entries are listed by key, since one tick
    can hold many entries."""
    def __init__(self, name):
        self.name = name
        self.data = {}


class ChartEntry:
    """One "key = value" line.

    Song properties have a name for a key and keep their value in
    self.property. Timed events have a tick for a key; the event code goes
    in self.kind ("N", "S", "TS", "B") and its numbers in self.args. Events
    that don't matter for scoring (text events, lyrics) get kind None.
    """
    def __init__(self, keystr, valuestr):
        keystr = keystr.strip()
        valuestr = valuestr.strip()

        self.property = None
        self.kind = None
        self.args = ()

        try:
            self.key = int(keystr)
        except ValueError:
            self.key = keystr
            self.property = int(valuestr) if valuestr.lstrip('-').isdigit() else valuestr.strip('"')
            return

        try:
            match valuestr.split():
                case ["TS", n]:
                    self.kind, self.args = "TS", (int(n), 4)
                case ["TS", n, d]:
                    self.kind, self.args = "TS", (int(n), 2**int(d))
                case ["B", bpm]:
                    self.kind, self.args = "B", (int(bpm) / 1000.0,)
                case ["N" | "S" as kind, v, length]:
                    self.kind, self.args = kind, (int(v), int(length))
        except ValueError:
            raise stmisc.ChartFileError(f"Bad .chart entry: {keystr} = {valuestr}")

    def __repr__(self):
        if self.kind is None:
            return f"ChartEntry({self.key!r} = {self.property!r})"
        return f"ChartEntry({self.key} = {self.kind} {self.args})"


class ChartParser:
    """Reads a .chart file to create a ChartData object."""
    def __init__(self, instrument='ExpertSingle'):
        self.chart = None
        self.sections = {}
        self.instrument = instrument

        # Markers that had no chord yet when they were read
        self.dropped_markers = 0

        # The most recent chord, for markers
        self._chord_tick = None
        self._chord = []

    def load_sections(self, charttxt):
        """Loads the chartfile's sections from text form so they can be
        accessed easily.
        """
        wip_section = None
        open_block = False
        for lineno, line in enumerate(charttxt, start=1):
            line = line.strip()
            if not line or line.startswith("//"):
                continue

            if wip_section:
                if line == "{":
                    if open_block:
                        raise stmisc.ChartFileError(f"Line {lineno}: nested block")
                    open_block = True
                elif line == "}":
                    if not open_block:
                        raise stmisc.ChartFileError(f"Line {lineno}: unopened block")
                    open_block = False
                    self.sections[wip_section.name] = wip_section
                    wip_section = None
                else:
                    if not open_block or '=' not in line:
                        raise stmisc.ChartFileError(f"Line {lineno}: unexpected '{line}'")
                    lhs, rhs = line.split('=', 1)

                    entry = ChartEntry(lhs, rhs)

                    # One tick can hold a chord, markers and a phrase
                    wip_section.data.setdefault(entry.key, []).append(entry)
            else:
                found = re.fullmatch(r'\[(.*)\]', line)
                if not found:
                    raise stmisc.ChartFileError(f"Line {lineno}: expected a section name, got '{line}'")
                wip_section = ChartSection(found.group(1))

        if wip_section:
            raise stmisc.ChartFileError(f"Section [{wip_section.name}] is never closed")

    def optype(self, entry, tick):
        match entry:
            case ChartEntry(kind="B", args=(bpm,)):
                return ('time', self.op_tempo, tick, bpm)
            case ChartEntry(kind="TS", args=(n, d)):
                return ('time', self.op_timesig, tick, n, d)
            case ChartEntry(kind="N", args=(v, length)) if v in LANE_NOTES or v == OPEN_NOTE:
                return ('notes', self.op_note, tick, v, length)
            case ChartEntry(kind="N", args=(v, _)) if v in (FORCED_MARKER, TAP_MARKER):
                return ('note_mods', self.op_marker, tick, v)
            case ChartEntry(kind="S", args=(v, length)) if v == SP_PHRASE:
                return ('phrases', self.op_phrase, tick, length)
            case _:
                return (None, None)

    def op_tempo(self, tick, bpm):
        self.chart.add_tempo(stdata.TempoChange(tick, bpm))

    def op_timesig(self, tick, numerator, denominator):
        self.chart.add_time_signature(stdata.TimeSignature(tick, numerator, denominator))

    def op_note(self, tick, notetype, length):
        note = self.chart.add_note(stdata.Note(tick, notetype, length))
        if tick != self._chord_tick:
            self._chord_tick = tick
            self._chord = []
        self._chord.append(note)

    def op_marker(self, tick, marker):
        """Ticks come in ascending order, so the latest chord is the one at
        or before this marker."""
        if not self._chord:
            self.dropped_markers += 1
            return
        for note in self._chord:
            if marker == FORCED_MARKER:
                note.forced = True
            else:
                note.tap = True

    def op_phrase(self, tick, length):
        self.chart.add_phrase(stdata.StarPowerPhrase(tick, tick + length))

    def push_tick(self, tick, entries, phases=('notes', 'note_mods', 'phrases')):
        """Process all the entries that happened on this tick, notes
        first so that markers can find them."""
        ops = [self.optype(entry, tick) for entry in entries]

        for phase in phases:
            for op_phase, op, *op_args in ops:
                if op_phase == phase:
                    op(*op_args)

    def parsefile(self, filename):
        """After this function, self.chart will be ready.
        Must be .chart.
        """
        try:
            with open(filename, mode='r', encoding='utf-8-sig') as charttxt:
                self.load_sections(charttxt)
        except UnicodeDecodeError as e:
            raise stmisc.ChartFileError(f"Can't decode {filename}: {e}")

        try:
            resolution = int(self.sections["Song"].data["Resolution"][0].property)
        except (KeyError, TypeError, ValueError):
            logger.warning("%s has no usable Resolution, using %d", filename, stdata.ChartData.DEFAULT_RESOLUTION)
            resolution = stdata.ChartData.DEFAULT_RESOLUTION

        try:
            self.chart = stdata.ChartData(resolution)
        except stmisc.ChartDataError as e:
            raise stmisc.ChartFileError(f"{filename}: {e}")

        if self.instrument not in self.sections:
            raise stmisc.ChartFileError(f"{filename} has no [{self.instrument}] section")

        try:
            sync = self.sections.get("SyncTrack")
            if sync is not None:
                for tick, entries in sync.data.items():
                    self.push_tick(tick, entries, phases=('time',))

            for tick in sorted(k for k in self.sections[self.instrument].data if isinstance(k, int)):
                self.push_tick(tick, self.sections[self.instrument].data[tick])
        except stmisc.ChartDataError as e:
            raise stmisc.ChartFileError(f"{filename}: {e}")

        if self.dropped_markers:
            logger.info("%s: %d marker(s) before the first note were ignored", filename, self.dropped_markers)

        self.chart.sort_by_time()
        return self.chart


class MidiParser:
    """Reads a .mid file to create a ChartData object."""
    def __init__(self, difficulty='Expert', trackname='PART GUITAR'):
        self.chart = None

        # Parsing mode
        self.mode_difficulty = difficulty
        self.trackname = trackname
        self.sustain_cutoff = None

        # Parsing state
        self._base_pitch = MIDI_LANE_PITCHES[difficulty]
        self._open_notes = False
        self._note_starts = {}
        self._sp_start_tick = None
        self._mod_starts = {}
        self._mod_ranges = []

    def optype(self, msg, tick):
        """Parses individual midi messages into the actual actions the parser
        will take based on that message.

        Returns: (op_phase, op_func, *args)
        """
        is_noteon = (
            msg.type == 'note_on' and msg.velocity > 0
        )
        is_noteoff = (
            msg.type == 'note_off'
            or msg.type == 'note_on' and msg.velocity == 0
        )

        r_opens = r'\[?ENHANCED_OPENS\]?'

        lanes = range(self._base_pitch, self._base_pitch + 5)
        open_pitch = self._base_pitch - 1
        forced_pitches = (self._base_pitch + 5, self._base_pitch + 6)
        tap_pitch = 104

        match msg:
            case mido.MetaMessage(type='set_tempo'):
                return ('time', self.op_tempo, tick, msg.tempo)
            case mido.MetaMessage(type='time_signature'):
                return ('time', self.op_timesig, tick, msg.numerator, msg.denominator)
            case mido.MetaMessage(type='text', text=t) if re.fullmatch(r_opens, t):
                return ('track', self.op_enable_opens)
            case mido.Message(note=n) if is_noteon and n in lanes:
                return ('track', self.op_note_start, tick, n - self._base_pitch)
            case mido.Message(note=n) if is_noteoff and n in lanes:
                return ('track', self.op_note_end, tick, n - self._base_pitch)
            case mido.Message(note=n) if is_noteon and n == open_pitch and self._open_notes:
                return ('track', self.op_note_start, tick, OPEN_NOTE)
            case mido.Message(note=n) if is_noteoff and n == open_pitch and self._open_notes:
                return ('track', self.op_note_end, tick, OPEN_NOTE)
            case mido.Message(note=n) if is_noteon and n == MIDI_SP_PITCH:
                return ('track', self.op_sp_start, tick)
            case mido.Message(note=n) if is_noteoff and n == MIDI_SP_PITCH:
                return ('track', self.op_sp_end, tick)
            case mido.Message(note=n) if is_noteon and n in forced_pitches:
                return ('track', self.op_mod_start, tick, FORCED_MARKER)
            case mido.Message(note=n) if is_noteoff and n in forced_pitches:
                return ('track', self.op_mod_end, tick, FORCED_MARKER)
            case mido.Message(note=n) if is_noteon and n == tap_pitch:
                return ('track', self.op_mod_start, tick, TAP_MARKER)
            case mido.Message(note=n) if is_noteoff and n == tap_pitch:
                return ('track', self.op_mod_end, tick, TAP_MARKER)
            case _:
                return (None, None)

    """Op functions: Each midi event results in one of these."""

    def op_tempo(self, tick, miditempo):
        self.chart.add_tempo(stdata.TempoChange(tick, mido.tempo2bpm(miditempo)))

    def op_timesig(self, tick, numerator, denominator):
        self.chart.add_time_signature(stdata.TimeSignature(tick, numerator, denominator))

    def op_enable_opens(self):
        self._open_notes = True

    def op_note_start(self, tick, notetype):
        self._note_starts[notetype] = tick

    def op_note_end(self, tick, notetype):
        try:
            start = self._note_starts.pop(notetype)
        except KeyError:
            # Note off without a note on
            return

        length = tick - start
        if length <= self.sustain_cutoff:
            length = 0
        self.chart.add_note(stdata.Note(start, notetype, length))

    def op_sp_start(self, tick):
        self._sp_start_tick = tick

    def op_sp_end(self, tick):
        if self._sp_start_tick is None:
            return
        self.chart.add_phrase(stdata.StarPowerPhrase(self._sp_start_tick, tick))
        self._sp_start_tick = None

    def op_mod_start(self, tick, marker):
        self._mod_starts[marker] = tick

    def op_mod_end(self, tick, marker):
        try:
            start = self._mod_starts.pop(marker)
        except KeyError:
            return
        self._mod_ranges.append((start, tick, marker))

    def apply_modifiers(self):
        for start, end, marker in self._mod_ranges:
            for note in self.chart.notes:
                if start <= note.time < end:
                    if marker == FORCED_MARKER:
                        note.forced = True
                    else:
                        note.tap = True

    def _run_track(self, track, phase):
        """Run the ops of one phase for every message in a track."""
        tick = 0
        for msg in track:
            tick += msg.time
            op_phase, op, *op_args = self.optype(msg, tick)
            if op_phase == phase:
                op(*op_args)

    def _read(self, mid):
        self.chart = stdata.ChartData(mid.ticks_per_beat)
        # Sustains this short are just how long the note was drawn
        self.sustain_cutoff = mid.ticks_per_beat * 64 // 192

        # The first track carries tempo and meter
        self._run_track(mid.tracks[0], 'time')

        track = next((t for t in mid.tracks if t.name == self.trackname), None)
        if track is None:
            self.chart = None
            return
        self._run_track(track, 'track')

    def parsefile(self, filename):
        """After calling this, self.chart will reflect the input filename.
        Must be .mid.
        """
        try:
            mid = mido.MidiFile(filename, clip=True)
        except (OSError, EOFError, ValueError) as e:
            raise stmisc.ChartFileError(f"Can't read {filename}: {e}")

        try:
            self._read(mid)
        except stmisc.ChartDataError as e:
            raise stmisc.ChartFileError(f"{filename}: {e}")

        if self.chart is None:
            raise stmisc.ChartFileError(f"{filename} has no {self.trackname} track")

        self.chart.sort_by_time()
        self.apply_modifiers()
        return self.chart
