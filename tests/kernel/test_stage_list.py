"""
StageList parsing and stage arithmetic.

Verifies:
- Stored configuration parses from a list or a JSON string
- Anything unusable is StagesNotConfiguredError, never a default list
- next_after / is_backward treat unlisted stages as unknown
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from shopfloor_kernel.domain.stages import StageList
from shopfloor_kernel.exceptions import StagesNotConfiguredError

STAGES = ["CUTTING", "WELDING", "PAINTING", "PACKING"]


class TestParse:
    def test_parses_list(self):
        stages = StageList.parse(STAGES)
        assert stages.to_list() == STAGES
        assert len(stages) == 4

    def test_parses_json_string(self):
        stages = StageList.parse('["CUTTING", "WELDING"]')
        assert stages.first() == "CUTTING"
        assert stages.last() == "WELDING"

    def test_parses_bytes(self):
        assert StageList.parse(b'["A"]').to_list() == ["A"]

    @pytest.mark.parametrize(
        "raw",
        [None, "", "not json", "{}", '{"a": 1}', "[]", [], ["A", "A"], ["A", ""], ["A", 3], 42],
    )
    def test_unusable_configuration_is_not_configured(self, raw):
        with pytest.raises(StagesNotConfiguredError):
            StageList.parse(raw)

    def test_error_carries_tenant(self):
        with pytest.raises(StagesNotConfiguredError) as exc_info:
            StageList.parse(None, tenant_id="t-1")
        assert exc_info.value.tenant_id == "t-1"
        assert exc_info.value.code == "STAGES_NOT_CONFIGURED"


class TestArithmetic:
    @pytest.fixture
    def stages(self):
        return StageList.parse(STAGES)

    def test_next_after(self, stages):
        assert stages.next_after("CUTTING") == "WELDING"
        assert stages.next_after("PACKING") is None

    def test_next_after_unlisted_stage_is_none(self, stages):
        assert stages.next_after("GALVANISING") is None
        assert stages.next_after(None) is None

    def test_index_of(self, stages):
        assert stages.index_of("PAINTING") == 2
        assert stages.index_of("GALVANISING") is None

    def test_is_backward(self, stages):
        assert stages.is_backward("PAINTING", "CUTTING")
        assert not stages.is_backward("CUTTING", "PAINTING")
        assert not stages.is_backward("PAINTING", "PAINTING")

    def test_custom_stage_is_never_backward(self, stages):
        assert not stages.is_backward("PAINTING", "GALVANISING")
        assert not stages.is_backward("GALVANISING", "CUTTING")

    def test_membership_and_iteration(self, stages):
        assert "WELDING" in stages
        assert "GALVANISING" not in stages
        assert list(stages) == STAGES


_stage_names = st.lists(
    st.text(alphabet="ABCDEFGHIJKLMNOPQRSTUVWXYZ_", min_size=1, max_size=12),
    min_size=1,
    max_size=10,
    unique=True,
)


@given(_stage_names)
def test_walking_next_after_visits_every_stage_in_order(names):
    stages = StageList.parse(names)
    walked = [stages.first()]
    while (nxt := stages.next_after(walked[-1])) is not None:
        walked.append(nxt)
    assert walked == names


@given(_stage_names, st.data())
def test_forward_moves_are_never_backward(names, data):
    stages = StageList.parse(names)
    i = data.draw(st.integers(min_value=0, max_value=len(names) - 1))
    j = data.draw(st.integers(min_value=i, max_value=len(names) - 1))
    assert not stages.is_backward(names[i], names[j])
    if i != j:
        assert stages.is_backward(names[j], names[i])
