# SPDX-License-Identifier: Apache-2.0
"""Pattern router specificity and registration checks."""
from __future__ import annotations

import pytest

from storefront.actions.base import AmbiguousPatternError, NoHandlerError
from storefront.actions.router import PatternRouter
from storefront.messages import ActionTag, parse_tag


async def role_handler(request):
    return "role"


async def get_handler(request):
    return "get"


def test_most_specific_pattern_wins():
    router = PatternRouter()
    router.register({"role": "cart"}, role_handler)
    router.register({"role": "cart", "cmd": "get"}, get_handler)

    assert router.resolve({"role": "cart", "cmd": "get"}) is get_handler
    assert router.resolve({"role": "cart", "cmd": "add"}) is role_handler


def test_specificity_does_not_depend_on_registration_order():
    router = PatternRouter()
    router.register({"role": "cart", "cmd": "get"}, get_handler)
    router.register({"role": "cart"}, role_handler)

    assert router.resolve("role:cart,cmd:get") is get_handler
    assert router.resolve("role:cart,cmd:clear") is role_handler


def test_duplicate_pattern_is_rejected_at_registration():
    router = PatternRouter()
    router.register({"role": "cart", "cmd": "get"}, get_handler)
    with pytest.raises(AmbiguousPatternError):
        router.register({"cmd": "get", "role": "cart"}, role_handler)


def test_overlapping_patterns_of_equal_specificity_are_rejected():
    router = PatternRouter()
    router.register({"role": "cart", "cmd": "get"}, get_handler)
    with pytest.raises(AmbiguousPatternError):
        router.register({"role": "cart", "userId": "alice"}, role_handler)
    assert len(router) == 1


def test_disjoint_patterns_coexist():
    router = PatternRouter()
    router.register({"role": "cart", "cmd": "get"}, get_handler)
    router.register({"role": "cart", "cmd": "add"}, role_handler)
    router.register({"role": "payment"}, role_handler)

    assert router.resolve({"role": "cart", "cmd": "add", "userId": "bob"}) is role_handler
    assert len(router.patterns()) == 3


def test_unmatched_tag_raises_no_handler():
    router = PatternRouter()
    router.register({"role": "cart", "cmd": "get"}, get_handler)
    with pytest.raises(NoHandlerError):
        router.resolve({"role": "cart"})
    with pytest.raises(NoHandlerError):
        router.resolve({"role": "order", "cmd": "get"})


def test_empty_pattern_is_rejected():
    with pytest.raises(ValueError):
        PatternRouter().register({}, get_handler)


def test_tag_text_form_ignores_spacing():
    assert parse_tag("role: payment, cmd:billCard") == ActionTag.of({"cmd": "billCard", "role": "payment"})
    assert str(parse_tag("role:cart,cmd:get")) == "cmd:get,role:cart"
    with pytest.raises(ValueError):
        parse_tag("role")


def test_tag_matching_is_structural():
    tag = ActionTag.of({"role": "cart", "cmd": "get", "userId": "alice"})
    assert tag.matches(ActionTag.of({"role": "cart"}))
    assert not tag.matches(ActionTag.of({"role": "cart", "cmd": "add"}))
    assert tag.get("userId") == "alice"
    assert tag.get("missing") is None
