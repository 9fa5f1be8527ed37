from . import stdata
from . import stmisc


def json_save(obj):
    """Object --> dict conversion."""
    if isinstance(obj, AnalysisRecord):
        return {
            '__obj__': 'record',

            'stversion': obj.stversion,
            'basescore': obj.basescore,
            'path': obj.path,
            'rules': obj.rules.as_dict(),

            'notecount': obj.notecount,
            'groupcount': obj.groupcount,
            'phrasecount': obj.phrasecount,

            'ref_improvement': obj.improvement(),
        }

    if isinstance(obj, stdata.OptimalPath):
        return {
            '__obj__': 'path',

            'activations': obj.activation_times,
            'totalscore': obj.totalscore,
        }

    raise TypeError(f"Unhandled type: {type(obj)}")


def json_load(_dict):
    """JSON has loaded a dict; try to fit it to Stellar data types.

    Stellar data types are saved with an __obj__ value to facilitate this.
    """
    try:
        obj_code = _dict['__obj__']
    except KeyError:
        # Not one of our objects, just a dict
        return _dict

    try:
        if obj_code == 'record':
            o = AnalysisRecord()
            o.stversion = tuple(_dict['stversion'])

            if not o.is_version_compatible():
                return o

            o.basescore = _dict['basescore']
            o.path = _dict['path']
            o.rules = stmisc.ScoringRules(**_dict['rules'])

            o.notecount = _dict['notecount']
            o.groupcount = _dict['groupcount']
            o.phrasecount = _dict['phrasecount']

            return o

        if obj_code == 'path':
            return stdata.OptimalPath(_dict['activations'], _dict['totalscore'])
    except KeyError:
        return "<Invalid object>"

    return "<Unrecognized object>"


class AnalysisRecord:
    """A "printout" representing one analyzed chart: its baseline score,
    the optimal path, and the rules they were scored under.

    A record stores the version of Stellar that created it.

    """
    def __init__(self):
        self.stversion = stmisc.STELLAR_VERSION

        self.basescore = 0
        self.path = stdata.OptimalPath([], 0)
        self.rules = stmisc.DEFAULT_RULES

        self.notecount = 0
        self.groupcount = 0
        self.phrasecount = 0

    def is_version_compatible(self):
        return self.stversion[:2] == stmisc.STELLAR_VERSION[:2]

    @property
    def optimalscore(self):
        return self.path.totalscore

    def improvement(self):
        return self.path.totalscore - self.basescore

    def improvement_pct(self):
        if self.basescore == 0:
            return 0.0
        return self.improvement() * 100.0 / self.basescore

    def report_lines(self, chart=None):
        """The textual report. With the chart, activations also get
        measure and clock positions."""
        lines = [
            "=== Star Power Optimizer Results ===",
            f"Base Score (no star power): {self.basescore}",
            f"Optimal Score: {self.optimalscore}",
            f"Score Improvement: +{self.improvement()} ({self.improvement_pct():.1f}%)",
            f"Activation Times: {self.path.activation_times}",
        ]

        if chart is not None and self.path.has_activations():
            lines.append("")
            for i, tick in enumerate(self.path.activation_times):
                tc = stmisc.Timecode(tick, chart)
                lines.append(f"  #{i + 1}: {tc.measurestr(fixed_width=True)} tick {tick} ({tc.timestr()})")
        elif not self.path.has_activations():
            lines.append("(No activations.)")

        return lines

    def report(self, chart=None):
        return '\n'.join(self.report_lines(chart))
