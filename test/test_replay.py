import unittest

import stellar.stdata as stdata
import stellar.stpath as stpath


class TestReplay(unittest.TestCase):
    """Test cases for replaying a chosen activation schedule."""
    def setUp(self):
        chart = stdata.ChartData(480)
        for i in range(30):
            chart.add_note(stdata.Note(i * 480, 0))
        chart.add_phrase(stdata.StarPowerPhrase(0, 480))
        chart.add_phrase(stdata.StarPowerPhrase(960, 1440))
        chart.sort_by_time()
        self.groups = stpath.prepare_groups(chart)

    def _test_rejects(self, activation_times):
        with self.assertRaises(ValueError):
            stpath.replay_path(self.groups, activation_times)

    def test_no_activations(self):
        replay = stpath.replay_path(self.groups, [])
        self.assertEqual(replay.totalscore, stpath.base_score(self.groups))
        self.assertEqual(replay.activation_steps(), [])
        self.assertEqual(len(replay.steps), 30)
        self.assertEqual(replay.steps[3].meter_in, 50)
        self.assertEqual(replay.steps[3].meter_gained, 100)

    def test_activation(self):
        replay = stpath.replay_path(self.groups, [1920])
        step = replay.activation_steps()[0]
        self.assertEqual(step.group.time, 1920)
        self.assertEqual(step.meter_gained, 100)
        self.assertEqual(step.meter_out, 88)
        self.assertEqual(step.multiplier, 2)
        self.assertEqual(step.points, 100)

        ended = [s for s in replay.steps if s.sp_ended]
        self.assertEqual([s.group.time for s in ended], [12 * 480])
        self.assertFalse(replay.steps[13].active)

    def test_not_on_group(self):
        self._test_rejects([1500])

    def test_not_enough_meter(self):
        self._test_rejects([480])

    def test_already_active(self):
        self._test_rejects([1920, 2400])

    def test_duplicate(self):
        self._test_rejects([1920, 1920])

    def test_step_str(self):
        replay = stpath.replay_path(self.groups, [1920])
        self.assertEqual(str(replay.steps[0]), "0: 50 pts at 1x")
        self.assertIn("phrase, meter 50 -> 100", str(replay.steps[3]))
        self.assertIn("ACTIVATE at meter 100", str(replay.steps[4]))
        self.assertIn("SP ended", str(replay.steps[12]))
