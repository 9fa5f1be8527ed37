import logging

from . import stdata
from . import stmisc


logger = logging.getLogger(__name__)


class Group:
    """Every note that starts on one tick (a chord), reduced to what the
    optimizer needs to score it.

    Groups are made fresh for each analysis and belong to it.
    """
    __slots__ = (
        'time', 'notecount', 'sustain_points', 'base_multiplier',
        'ticks_per_bar', 'delta_ticks', 'phrase_complete',
    )

    def __init__(self, time, notecount, sustain_points, base_multiplier, ticks_per_bar):
        self.time = time
        self.notecount = notecount
        self.sustain_points = sustain_points
        self.base_multiplier = base_multiplier
        self.ticks_per_bar = ticks_per_bar
        self.delta_ticks = 0
        self.phrase_complete = False

    def basescore(self, rules):
        """Note and sustain points before any multiplier."""
        return rules.note_points * self.notecount + self.sustain_points

    def score(self, rules, sp_active):
        mult = self.base_multiplier * (rules.sp_multiplier if sp_active else 1)
        return self.basescore(rules) * mult

    def drain(self, rules):
        """Meter lost while active between this group and the next one."""
        if self.ticks_per_bar <= 0 or self.delta_ticks <= 0:
            return 0
        return rules.drain_per_bar * self.delta_ticks // self.ticks_per_bar

    def __repr__(self):
        sp = ", SP" if self.phrase_complete else ""
        return (
            f"[{self.time}: {self.notecount} note(s), +{self.sustain_points} sus, "
            f"{self.base_multiplier}x, tpb={self.ticks_per_bar}, dt={self.delta_ticks}{sp}]"
        )


def sustain_points(duration, resolution, rules):
    """Sustain bonus for one note, rounded up per note."""
    if duration <= 0:
        return 0
    return -(-duration * rules.sustain_points_per_beat // resolution)


def build_groups(notes, resolution, time_signatures=(), rules=stmisc.DEFAULT_RULES):
    """Collapse time-sorted notes into groups, one per distinct tick.

    The combo goes up by one per group no matter how many notes the chord
    has. Meter comes from the latest time signature at or before each
    group; until the first one (or if there are none) the chart is 4/4.
    """
    groups = []

    signatures = sorted(time_signatures, key=lambda ts: ts.tick)
    current_sig = stdata.TimeSignature(0, 4, 4)
    sig_i = 0

    i = 0
    while i < len(notes):
        time = notes[i].time
        notecount = 0
        sus = 0
        while i < len(notes) and notes[i].time == time:
            notecount += 1
            sus += sustain_points(notes[i].duration, resolution, rules)
            i += 1

        while sig_i < len(signatures) and signatures[sig_i].tick <= time:
            current_sig = signatures[sig_i]
            sig_i += 1

        if len(groups) >= rules.max_groups:
            raise stmisc.ChartDataError(
                f"Chart has more than {rules.max_groups} note groups."
            )

        groups.append(Group(
            time, notecount, sus,
            rules.to_multiplier(len(groups)),
            current_sig.ticks_per_bar(resolution)
        ))

    for current, following in zip(groups, groups[1:]):
        current.delta_ticks = max(0, following.time - current.time)

    return groups


def phrase_completion_times(groups, phrases):
    """Ticks of the groups where each phrase is collected.

    A phrase is collected on the last group inside [start, end]. Groups are
    never revisited, so overlapping phrases can't both claim the same group;
    a phrase with no group of its own gives nothing.
    """
    completion_times = set()
    if not groups or not phrases:
        return completion_times

    group_i = 0
    for phrase in sorted(phrases, key=lambda p: p.start):
        while group_i < len(groups) and groups[group_i].time < phrase.start:
            group_i += 1

        last_time = None
        while group_i < len(groups) and groups[group_i].time <= phrase.end:
            last_time = groups[group_i].time
            group_i += 1

        if last_time is not None:
            completion_times.add(last_time)

    return completion_times


def mark_phrase_completions(groups, phrases):
    completion_times = phrase_completion_times(groups, phrases)
    for group in groups:
        group.phrase_complete = group.time in completion_times
    return completion_times


def prepare_groups(chart, rules=stmisc.DEFAULT_RULES):
    """Chart --> scored groups with phrase completions marked."""
    notes = sorted(chart.notes, key=lambda n: n.time)
    groups = build_groups(notes, chart.resolution, chart.time_signatures, rules)
    mark_phrase_completions(groups, chart.phrases)
    return groups


class PathSolver:
    """Exact optimizer for when to activate Star Power.

    The state going into a group is (group index, meter, active). Meter is
    bounded by the rules and the rest is just the song position, so the
    whole state space fits in a table:

        table[i][active][meter] = best score from group i to the end

    The table is filled from the last group backwards. For inactive states
    a second table remembers whether activating on that group was the
    better choice, which is enough to walk the best path forwards again.

    Ties go to not activating: activating only wins when it scores strictly
    more.

    Tables belong to a single solve() call.
    """
    def __init__(self, groups, rules=stmisc.DEFAULT_RULES):
        self.groups = groups
        self.rules = rules

        self.table = None
        self._activate = None

    def solve(self):
        self._fill_tables()
        path = self._walk_best_path()
        logger.debug(
            "Solved %d groups: score %d with %d activation(s)",
            len(self.groups), path.totalscore, len(path)
        )
        return path

    def best_score(self, i, meter, active):
        """Best score from group i onward, after solve()."""
        return self.table[i][1 if active else 0][meter]

    def _fill_tables(self):
        rules = self.rules
        max_meter = rules.max_meter
        meters = range(max_meter + 1)
        n = len(self.groups)

        table = [None] * (n + 1)
        activate = [None] * n
        table[n] = ([0] * (max_meter + 1), [0] * (max_meter + 1))

        for i in range(n - 1, -1, -1):
            group = self.groups[i]
            next_inactive, next_active = table[i + 1]

            plain = group.score(rules, False)
            boosted = group.score(rules, True)
            drain = group.drain(rules)

            row_inactive = [0] * (max_meter + 1)
            row_active = [0] * (max_meter + 1)
            row_activate = bytearray(max_meter + 1)

            for meter in meters:
                gained = min(max_meter, meter + rules.phrase_gain) if group.phrase_complete else meter
                drained = max(0, gained - drain)
                # SP runs out once the meter hits 0
                rest_active = next_active[drained] if drained > 0 else next_inactive[0]

                row_active[meter] = boosted + rest_active

                total = plain + next_inactive[gained]
                if gained >= rules.activation_threshold:
                    with_activation = boosted + rest_active
                    if with_activation > total:
                        total = with_activation
                        row_activate[meter] = 1
                row_inactive[meter] = total

            table[i] = (row_inactive, row_active)
            activate[i] = row_activate

        self.table = table
        self._activate = activate

    def _walk_best_path(self):
        if not self.groups:
            return stdata.OptimalPath([], 0)

        rules = self.rules
        activation_times = []
        meter = 0
        active = False

        for i, group in enumerate(self.groups):
            # Decisions are stored by the meter coming into the group
            activate = not active and self._activate[i][meter]

            if group.phrase_complete:
                meter = min(rules.max_meter, meter + rules.phrase_gain)

            if activate:
                activation_times.append(group.time)
                active = True

            if active:
                meter = max(0, meter - group.drain(rules))
                active = meter > 0

        return stdata.OptimalPath(activation_times, self.best_score(0, 0, False))


def find_optimal_path(chart, rules=stmisc.DEFAULT_RULES):
    """The highest scoring activation schedule for a chart."""
    if not chart.notes:
        return stdata.OptimalPath([], 0)

    groups = prepare_groups(chart, rules)
    return PathSolver(groups, rules).solve()


def base_score(groups, rules=stmisc.DEFAULT_RULES):
    """Score for the groups with Star Power never activated."""
    return sum(group.score(rules, False) for group in groups)


def calculate_base_score(chart, rules=stmisc.DEFAULT_RULES):
    if not chart.notes:
        return 0
    notes = sorted(chart.notes, key=lambda n: n.time)
    return base_score(build_groups(notes, chart.resolution, chart.time_signatures, rules), rules)


class ReplayStep:
    """What happened on one group while replaying a path."""

    def __init__(self, group):
        self.group = group
        self.meter_in = 0
        self.meter_gained = 0
        self.meter_out = 0
        self.activated = False
        self.active = False
        self.sp_ended = False
        self.multiplier = 1
        self.points = 0

    def __str__(self):
        events = []
        if self.group.phrase_complete:
            events.append(f"phrase, meter {self.meter_in} -> {self.meter_gained}")
        if self.activated:
            events.append(f"ACTIVATE at meter {self.meter_gained}")
        if self.sp_ended:
            events.append("SP ended")
        detail = f" | {'; '.join(events)}" if events else ""
        return f"{self.group.time}: {self.points} pts at {self.multiplier}x{detail}"


class PathReplay:

    def __init__(self):
        self.steps = []
        self.totalscore = 0

    def activation_steps(self):
        return [step for step in self.steps if step.activated]

    def max_meter(self):
        return max((max(s.meter_gained, s.meter_out) for s in self.steps), default=0)


def replay_path(groups, activation_times, rules=stmisc.DEFAULT_RULES):
    """Play through the groups, activating on the given ticks, and record
    every meter change and score along the way.

    Raises ValueError if an activation isn't on a group tick or isn't
    allowed at that point (SP already active, or not enough meter).
    """
    pending = sorted(activation_times)
    group_times = set(g.time for g in groups)
    for tick in pending:
        if tick not in group_times:
            raise ValueError(f"Activation at tick {tick} is not on a note group")
    pending = set(pending)
    if len(pending) != len(activation_times):
        raise ValueError("Activation ticks must be unique")

    replay = PathReplay()
    meter = 0
    active = False

    for group in groups:
        step = ReplayStep(group)
        step.meter_in = meter

        if group.phrase_complete:
            meter = min(rules.max_meter, meter + rules.phrase_gain)
        step.meter_gained = meter

        if group.time in pending:
            if active:
                raise ValueError(f"Activation at tick {group.time} while SP is already active")
            if meter < rules.activation_threshold:
                raise ValueError(
                    f"Activation at tick {group.time} with meter {meter}, "
                    f"needs {rules.activation_threshold}"
                )
            active = True
            step.activated = True

        step.active = active
        step.multiplier = group.base_multiplier * (rules.sp_multiplier if active else 1)
        step.points = group.score(rules, active)
        replay.totalscore += step.points

        if active:
            meter = max(0, meter - group.drain(rules))
            if meter == 0:
                active = False
                step.sp_ended = True
        step.meter_out = meter

        replay.steps.append(step)

    return replay
