import pytest

from tracker_migrator.labels import EXTRA_LABELS, MAX_LABEL_DESCRIPTION_LENGTH, LabelTranslator, convert_label
from tracker_migrator.models import Label, LabelData


@pytest.mark.unit
class TestConvertLabel:
    """Test conversion of GitLab labels into GitHub label data."""

    def test_color_and_case(self) -> None:
        label = Label(name="Needs Review", color="#FF0000", description="Waiting")
        assert convert_label(label, LabelTranslator(None)) == LabelData("needs review", "FF0000", "Waiting")

    def test_keep_case(self) -> None:
        label = Label(name="Needs Review", color="00ff00")
        assert convert_label(label, LabelTranslator(None), use_lower_case=False).name == "Needs Review"

    def test_description_is_truncated(self) -> None:
        label = Label(name="x", color="#000000", description="d" * 150)
        assert len(convert_label(label, LabelTranslator(None)).description) == MAX_LABEL_DESCRIPTION_LENGTH

    def test_translation_before_lowercasing(self) -> None:
        label = Label(name="p_High", color="#000000")
        assert convert_label(label, LabelTranslator(["p_*:Priority: *"])).name == "priority: high"

    def test_extra_labels(self) -> None:
        assert [label.name for label in EXTRA_LABELS] == ["has attachment", "gitlab merge request"]


@pytest.mark.unit
class TestLabelTranslator:
    """Test label translation functionality."""

    def test_simple_translation(self) -> None:
        translator = LabelTranslator(["p_high:priority: high", "bug:defect"])
        assert translator.translate("p_high") == "priority: high"
        assert translator.translate("bug") == "defect"
        assert translator.translate("unknown") == "unknown"

    def test_wildcard_translation(self) -> None:
        translator = LabelTranslator(["p_*:priority: *", "status_*:status: *"])
        assert translator.translate("p_high") == "priority: high"
        assert translator.translate("status_open") == "status: open"
        assert translator.translate("other") == "other"

    def test_wildcard_is_not_a_regex(self) -> None:
        translator = LabelTranslator(["a.b*:x *"])
        assert translator.translate("a.bc") == "x c"
        assert translator.translate("aXbc") == "aXbc"

    def test_first_matching_pattern_wins(self) -> None:
        translator = LabelTranslator(["*:any *", "bug:defect"])
        assert translator.translate("bug") == "any bug"

    def test_invalid_pattern(self) -> None:
        with pytest.raises(ValueError, match="Invalid pattern format"):
            LabelTranslator(["no-separator"])
