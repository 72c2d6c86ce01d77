"""
Exclusion rules: decide whether an image is protected from deletion.

Matching is by image name / tag prefix and suffix, or by the exact value of
the image's ``exclude`` label. An image with no names and no label is never
excluded; protection has to be declared.
"""

from typing import Iterable, Tuple

from image_janitor.models import ExclusionRules, ImageReferences


def split_repo_tag(repo_tag: str) -> Tuple[str, str]:
    """Split "name:tag" at the last colon; without a colon the tag is empty"""
    name, sep, tag = repo_tag.rpartition(":")
    if not sep:
        return repo_tag, ""
    return name, tag


def _has_prefix(rules: Iterable[str], value: str) -> bool:
    return any(value.startswith(rule) for rule in rules)


def _has_suffix(rules: Iterable[str], value: str) -> bool:
    return any(value.endswith(rule) for rule in rules)


def matches_repo_tag(rules: ExclusionRules, repo_tag: str) -> bool:
    name, tag = split_repo_tag(repo_tag)
    return (
        _has_prefix(rules.image_name_prefix, name)
        or _has_suffix(rules.image_name_suffix, name)
        or _has_prefix(rules.image_tag_prefix, tag)
        or _has_suffix(rules.image_tag_suffix, tag)
    )


def matches_label(rules: ExclusionRules, image: ImageReferences) -> bool:
    value = image.exclude_label
    return value is not None and value in rules.image_label


def is_excluded(rules: ExclusionRules, image: ImageReferences) -> bool:
    """True if any of the image's names, or its exclude label, matches a rule"""
    if any(matches_repo_tag(rules, repo_tag) for repo_tag in image.repo_tags):
        return True
    return matches_label(rules, image)
