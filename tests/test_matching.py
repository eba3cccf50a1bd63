"""Tests for m365provision.provisioning.matching."""

from m365provision.provisioning.matching import resolve_by_name
from m365provision.provisioning.models import TargetRef


def _refs(*names):
    return [TargetRef(id=f"id-{i}", display_name=n) for i, n in enumerate(names)]


def _name(ref):
    return ref.display_name


class TestResolveByName:
    """Tests for three-tier name resolution."""

    def test_exact_match(self):
        refs = _refs("Sales", "sales")
        assert resolve_by_name("sales", refs, _name).id == "id-1"

    def test_exact_beats_case_insensitive(self):
        refs = _refs("SALES", "Sales")
        assert resolve_by_name("Sales", refs, _name).id == "id-1"

    def test_case_insensitive_match(self):
        refs = _refs("Sales Team", "SALES")
        assert resolve_by_name("sales", refs, _name).id == "id-1"

    def test_case_insensitive_beats_substring(self):
        refs = _refs("Sales Europe", "sales")
        assert resolve_by_name("Sales", refs, _name).id == "id-1"

    def test_substring_match_first_wins(self):
        refs = _refs("Marketing", "Sales Europe", "Sales Americas")
        assert resolve_by_name("sales", refs, _name).id == "id-1"

    def test_no_match(self):
        assert resolve_by_name("Legal", _refs("Sales", "Finance"), _name) is None

    def test_blank_name_never_matches(self):
        # A blank name would otherwise substring-match everything
        assert resolve_by_name("  ", _refs("Sales"), _name) is None

    def test_name_is_trimmed(self):
        assert resolve_by_name(" Sales ", _refs("Sales"), _name).id == "id-0"

    def test_accepts_generator(self):
        refs = (r for r in _refs("Sales"))
        assert resolve_by_name("Sales", refs, _name) is not None
