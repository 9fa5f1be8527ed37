import os
import tempfile
import unittest

import mido

import stellar.stdata as stdata
import stellar.stmisc as stmisc
import stellar.stpath as stpath
import stellar.stsong as stsong


INPUTDIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "input", "test_chartfile")


class TestChartParser(unittest.TestCase):
    """Test cases for reading .chart files."""
    def setUp(self):
        self.chartfile = os.path.join(INPUTDIR, "basic.chart")
        self.parser = stsong.ChartParser()
        self.chart = self.parser.parsefile(self.chartfile)

    def _parse_text(self, text, instrument='ExpertSingle'):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "notes.chart")
            with open(path, 'w', encoding='utf-8') as f:
                f.write(text)
            return stsong.ChartParser(instrument).parsefile(path)

    def test_song(self):
        self.assertEqual(self.chart.resolution, 192)
        self.assertEqual(self.parser.sections["Song"].data["Name"][0].property, "Basic")

    def test_sync(self):
        self.assertEqual(self.chart.time_signatures, (
            stdata.TimeSignature(0, 4, 4),
            stdata.TimeSignature(1536, 6, 8),
        ))
        self.assertEqual(self.chart.tempo_changes, (
            stdata.TempoChange(0, 120.0),
            stdata.TempoChange(1536, 90.0),
        ))

    def test_notes(self):
        self.assertEqual(len(self.chart.notes), 8)
        self.assertEqual([n.time for n in self.chart.notes], [0, 0, 192, 384, 576, 768, 960, 1152])
        self.assertEqual(self.chart.notes_at(192)[0].duration, 96)

    def test_forced_open(self):
        note = self.chart.notes_at(384)[0]
        self.assertTrue(note.is_open())
        self.assertTrue(note.forced)
        self.assertFalse(note.tap)

    def test_tap_goes_back_to_chord(self):
        # The tap marker at 600 has no note of its own
        self.assertTrue(self.chart.notes_at(576)[0].tap)
        self.assertEqual(self.chart.notes_at(600), [])

    def test_phrase(self):
        self.assertEqual(self.chart.phrases, (stdata.StarPowerPhrase(768, 1152),))

    def test_groups(self):
        groups = stpath.prepare_groups(self.chart)
        self.assertEqual([g.notecount for g in groups], [2, 1, 1, 1, 1, 1, 1])
        self.assertEqual([g.time for g in groups if g.phrase_complete], [1152])
        # 6/8 from tick 1536 is not reached by any note
        self.assertTrue(all(g.ticks_per_bar == 768 for g in groups))

    def test_missing_instrument(self):
        with self.assertRaises(stmisc.ChartFileError):
            stsong.ChartParser('HardSingle').parsefile(self.chartfile)

    def test_other_instrument(self):
        chart = self._parse_text(
            "[Song]\n{\n  Resolution = 480\n}\n"
            "[HardDoubleBass]\n{\n  0 = N 0 0\n  480 = N 1 480\n}\n",
            instrument='HardDoubleBass'
        )
        self.assertEqual(chart.resolution, 480)
        self.assertEqual(len(chart.notes), 2)
        self.assertEqual(chart.time_signatures, ())

    def test_no_resolution(self):
        chart = self._parse_text("[Song]\n{\n}\n[ExpertSingle]\n{\n  0 = N 0 0\n}\n")
        self.assertEqual(chart.resolution, stdata.ChartData.DEFAULT_RESOLUTION)

    def test_bad_resolution(self):
        with self.assertRaises(stmisc.ChartFileError):
            self._parse_text("[Song]\n{\n  Resolution = 0\n}\n[ExpertSingle]\n{\n}\n")

    def test_unclosed_section(self):
        with self.assertRaises(stmisc.ChartFileError):
            self._parse_text("[Song]\n{\n  Resolution = 192\n")

    def test_garbage(self):
        with self.assertRaises(stmisc.ChartFileError):
            self._parse_text("this is not a chart\n")

    def test_bad_entry(self):
        with self.assertRaises(stmisc.ChartFileError):
            self._parse_text("[ExpertSingle]\n{\n  0 = N zero 0\n}\n")

    def test_negative_length(self):
        with self.assertRaises(stmisc.ChartFileError):
            self._parse_text("[ExpertSingle]\n{\n  0 = S 2 -10\n}\n")

    def test_marker_before_notes(self):
        chart = self._parse_text("[ExpertSingle]\n{\n  0 = N 5 0\n  192 = N 0 0\n}\n")
        self.assertFalse(chart.notes[0].forced)

    def test_marker_finds_latest_chord(self):
        # The 300 marker belongs to the 192 chord only, and the 384 marker
        # is listed before its own note
        chart = self._parse_text(
            "[ExpertSingle]\n{\n"
            "  0 = N 0 0\n  192 = N 1 0\n  192 = N 2 0\n  300 = N 6 0\n"
            "  384 = N 5 0\n  384 = N 3 0\n}\n"
        )
        self.assertEqual([(n.time, n.tap) for n in chart.notes], [(0, False), (192, True), (192, True), (384, False)])
        self.assertEqual([n.forced for n in chart.notes], [False, False, False, True])


class TestMidiParser(unittest.TestCase):
    """Test cases for reading .mid files, built with mido on the fly."""
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def _save(self, mid):
        path = os.path.join(self.tmp.name, "notes.mid")
        mid.save(path)
        return path

    def _tempo_track(self):
        track = mido.MidiTrack()
        track.append(mido.MetaMessage('set_tempo', tempo=500000, time=0))
        track.append(mido.MetaMessage('time_signature', numerator=4, denominator=4, time=0))
        track.append(mido.MetaMessage('time_signature', numerator=3, denominator=4, time=3840))
        return track

    def _guitar_track(self, name='PART GUITAR'):
        track = mido.MidiTrack()
        track.append(mido.MetaMessage('track_name', name=name, time=0))
        # SP phrase over the first two notes
        track.append(mido.Message('note_on', note=116, velocity=100, time=0))
        # Expert green, too short to count as a sustain
        track.append(mido.Message('note_on', note=96, velocity=100, time=0))
        track.append(mido.Message('note_off', note=96, velocity=0, time=60))
        # Expert red at 480, sustained for two beats
        track.append(mido.Message('note_on', note=97, velocity=100, time=420))
        track.append(mido.Message('note_on', note=97, velocity=0, time=960))
        track.append(mido.Message('note_off', note=116, velocity=0, time=0))
        # Tapped yellow at 1920
        track.append(mido.Message('note_on', note=104, velocity=100, time=480))
        track.append(mido.Message('note_on', note=98, velocity=100, time=0))
        track.append(mido.Message('note_off', note=98, velocity=0, time=60))
        track.append(mido.Message('note_off', note=104, velocity=0, time=0))
        # Hard green, not read on Expert
        track.append(mido.Message('note_on', note=84, velocity=100, time=0))
        track.append(mido.Message('note_off', note=84, velocity=0, time=60))
        return track

    def _make_file(self, tracks):
        mid = mido.MidiFile(ticks_per_beat=480)
        mid.tracks.extend(tracks)
        return self._save(mid)

    def test_notes(self):
        path = self._make_file([self._tempo_track(), self._guitar_track()])
        chart = stsong.MidiParser().parsefile(path)

        self.assertEqual(chart.resolution, 480)
        self.assertEqual([(n.time, n.type, n.duration) for n in chart.notes], [(0, 0, 0), (480, 1, 960), (1920, 2, 0)])
        self.assertEqual(chart.phrases, (stdata.StarPowerPhrase(0, 1440),))

    def test_modifiers(self):
        path = self._make_file([self._tempo_track(), self._guitar_track()])
        chart = stsong.MidiParser().parsefile(path)
        self.assertEqual([n.tap for n in chart.notes], [False, False, True])
        self.assertFalse(any(n.forced for n in chart.notes))

    def test_sync(self):
        path = self._make_file([self._tempo_track(), self._guitar_track()])
        chart = stsong.MidiParser().parsefile(path)
        self.assertEqual(chart.tempo_changes, (stdata.TempoChange(0, 120.0),))
        self.assertEqual(chart.time_signatures, (
            stdata.TimeSignature(0, 4, 4),
            stdata.TimeSignature(3840, 3, 4),
        ))

    def test_difficulty(self):
        path = self._make_file([self._tempo_track(), self._guitar_track()])
        chart = stsong.MidiParser('Hard').parsefile(path)
        self.assertEqual([(n.time, n.type) for n in chart.notes], [(1980, 0)])

    def test_open_notes(self):
        track = mido.MidiTrack()
        track.append(mido.MetaMessage('track_name', name='PART BASS', time=0))
        track.append(mido.MetaMessage('text', text='[ENHANCED_OPENS]', time=0))
        track.append(mido.Message('note_on', note=95, velocity=100, time=0))
        track.append(mido.Message('note_off', note=95, velocity=0, time=60))
        path = self._make_file([self._tempo_track(), track])

        chart = stsong.MidiParser(trackname='PART BASS').parsefile(path)
        self.assertEqual(len(chart.notes), 1)
        self.assertTrue(chart.notes[0].is_open())

    def test_missing_track(self):
        path = self._make_file([self._tempo_track(), self._guitar_track('PART DRUMS')])
        with self.assertRaises(stmisc.ChartFileError):
            stsong.MidiParser().parsefile(path)

    def test_not_a_midi(self):
        path = os.path.join(self.tmp.name, "notes.mid")
        with open(path, 'wb') as f:
            f.write(b"definitely not midi")
        with self.assertRaises(stmisc.ChartFileError):
            stsong.MidiParser().parsefile(path)
