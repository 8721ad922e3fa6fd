import pytest

from darkplanner.weather.seeing import SeeingLabel, seeing_label, seeing_score


@pytest.mark.parametrize(
    "winds,score,label",
    [
        ((0, 0, 0, 0), 100, SeeingLabel.EXCELLENT),
        ((200, 200, 120, 120), 10, SeeingLabel.POOR),
        ((150, None, 60, None), 55, SeeingLabel.AVERAGE),
        ((120, 140, 60, 60), 70, SeeingLabel.GOOD),
    ],
)
def test_seeing_score_and_label(winds, score, label):
    assert seeing_score(*winds) == score
    assert seeing_label(score) is label


def test_missing_level_pair_gives_none():
    assert seeing_score(100, 100, None, None) is None
    assert seeing_score(None, None, 50, 50) is None
    assert seeing_label(None) is None


def test_label_boundaries():
    assert seeing_label(80) is SeeingLabel.EXCELLENT
    assert seeing_label(60) is SeeingLabel.GOOD
    assert seeing_label(40) is SeeingLabel.AVERAGE
    assert seeing_label(39) is SeeingLabel.POOR
