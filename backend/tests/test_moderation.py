import itertools

import pytest

from alzooka import moderation
from alzooka.moderation import CATEGORIES, Likelihood


def _all_unknown(**overrides):
    values = {name: Likelihood.UNKNOWN for name in CATEGORIES}
    values.update(overrides)
    return values


def test_likelihood_levels_are_ordered():
    ordered = [
        Likelihood.UNKNOWN,
        Likelihood.VERY_UNLIKELY,
        Likelihood.UNLIKELY,
        Likelihood.POSSIBLE,
        Likelihood.LIKELY,
        Likelihood.VERY_LIKELY,
    ]
    assert sorted(reversed(ordered)) == ordered
    assert Likelihood.LIKELY > Likelihood.POSSIBLE
    assert Likelihood.UNKNOWN <= Likelihood.VERY_UNLIKELY


def test_very_likely_adult_is_blocked():
    verdict = moderation.evaluate(_all_unknown(adult=Likelihood.VERY_LIKELY))
    assert verdict.blocked is True
    assert verdict.safe is False
    assert verdict.block_reasons == ("adult: VERY_LIKELY",)


def test_likely_adult_is_blocked_but_likely_violence_is_not():
    assert moderation.evaluate(_all_unknown(adult=Likelihood.LIKELY)).blocked is True
    assert moderation.evaluate(_all_unknown(violence=Likelihood.LIKELY)).blocked is False
    assert moderation.evaluate(_all_unknown(racy=Likelihood.LIKELY)).blocked is False


def test_possible_everywhere_and_medical_spoof_never_block():
    verdict = moderation.evaluate(
        {
            "adult": Likelihood.POSSIBLE,
            "violence": Likelihood.POSSIBLE,
            "racy": Likelihood.POSSIBLE,
            "medical": Likelihood.VERY_LIKELY,
            "spoof": Likelihood.VERY_LIKELY,
        }
    )
    assert verdict.blocked is False
    assert verdict.block_reasons == ()
    assert verdict.block_reason is None


def test_violence_reason_is_reported_alone():
    verdict = moderation.evaluate(_all_unknown(adult=Likelihood.UNLIKELY, violence=Likelihood.VERY_LIKELY))
    assert verdict.blocked is True
    assert verdict.block_reasons == ("violence: VERY_LIKELY",)


def test_reasons_follow_fixed_category_order():
    verdict = moderation.evaluate(
        {"racy": Likelihood.VERY_LIKELY, "violence": Likelihood.VERY_LIKELY, "adult": Likelihood.LIKELY}
    )
    assert verdict.block_reasons == ("adult: LIKELY", "violence: VERY_LIKELY", "racy: VERY_LIKELY")
    assert verdict.block_reason == "adult: LIKELY, violence: VERY_LIKELY, racy: VERY_LIKELY"


def test_missing_categories_count_as_unknown():
    verdict = moderation.evaluate({"adult": Likelihood.VERY_UNLIKELY})
    assert set(verdict.categories) == set(CATEGORIES)
    assert verdict.categories["spoof"] == Likelihood.UNKNOWN
    assert verdict.blocked is False


def test_none_labels_count_as_unknown():
    verdict = moderation.evaluate({"adult": None, "violence": "VERY_LIKELY"})
    assert verdict.categories["adult"] == Likelihood.UNKNOWN
    assert verdict.block_reasons == ("violence: VERY_LIKELY",)
    assert verdict.error is None


def test_unrecognised_label_fails_closed():
    verdict = moderation.evaluate({"adult": "BOGUS", "violence": "UNLIKELY"})
    assert verdict.blocked is True
    assert verdict.block_reasons == (moderation.UNAVAILABLE_REASON,)
    assert verdict.error == "Unrecognized likelihood label"
    assert all(level == Likelihood.UNKNOWN for level in verdict.categories.values())


def test_blocked_matches_reasons_for_every_combination():
    levels = list(Likelihood)
    for adult, violence, racy in itertools.product(levels, repeat=3):
        verdict = moderation.evaluate({"adult": adult, "violence": violence, "racy": racy})
        assert verdict.blocked == bool(verdict.block_reasons)
        assert verdict.safe == (not verdict.blocked)


def test_unavailable_is_always_blocked():
    verdict = moderation.evaluate_unavailable()
    assert verdict.blocked is True
    assert verdict.block_reasons == (moderation.UNAVAILABLE_REASON,)
    assert all(level == Likelihood.UNKNOWN for level in verdict.categories.values())
    assert verdict.error


def test_threshold_table_cannot_be_changed_at_runtime():
    with pytest.raises(TypeError):
        moderation.BLOCK_THRESHOLDS["adult"] = frozenset()  # type: ignore[index]


def test_parse_annotation_accepts_raw_labels():
    verdict = moderation.parse_annotation(
        {"adult": "VERY_UNLIKELY", "violence": "UNLIKELY", "racy": "POSSIBLE", "medical": "UNKNOWN", "spoof": "LIKELY"}
    )
    assert verdict.blocked is False
    assert verdict.error is None
    assert verdict.categories["racy"] == Likelihood.POSSIBLE


@pytest.mark.parametrize(
    "annotation",
    [
        None,
        "VERY_LIKELY",
        {"adult": "VERY_UNLIKELY"},
        {"adult": "SOMEWHAT", "violence": "UNKNOWN", "racy": "UNKNOWN", "medical": "UNKNOWN", "spoof": "UNKNOWN"},
    ],
)
def test_parse_annotation_fails_closed(annotation):
    verdict = moderation.parse_annotation(annotation)
    assert verdict.blocked is True
    assert verdict.error


def test_user_message_is_generic_for_policy_blocks():
    adult = moderation.evaluate(_all_unknown(adult=Likelihood.VERY_LIKELY))
    violence = moderation.evaluate(_all_unknown(violence=Likelihood.VERY_LIKELY))
    message = moderation.user_message(adult)
    assert message == moderation.user_message(violence) == moderation.BLOCKED_MESSAGE
    assert "adult" not in message.lower()
    assert "violence" not in message.lower()


def test_user_message_asks_to_retry_after_errors():
    assert moderation.user_message(moderation.evaluate_unavailable()) == moderation.RETRY_MESSAGE


def test_user_message_empty_when_allowed():
    assert moderation.user_message(moderation.evaluate({})) == ""


def test_to_dict_shape():
    body = moderation.evaluate(_all_unknown(adult=Likelihood.LIKELY)).to_dict()
    assert body == {
        "safe": False,
        "blocked": True,
        "categories": {
            "adult": "LIKELY",
            "violence": "UNKNOWN",
            "racy": "UNKNOWN",
            "medical": "UNKNOWN",
            "spoof": "UNKNOWN",
        },
        "blockReason": "adult: LIKELY",
        "error": None,
    }
