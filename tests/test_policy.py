"""
Tests for the deletion policy in image_janitor/policy.py

Tests verify the order of the checks (exclusion, running, stopped-only,
enforcing) and that history is only cleaned up once an image is really gone.
"""

from unittest.mock import patch

import pytest

from image_janitor.history import ImageHistory
from image_janitor.models import Decision, ExclusionRules, PolicyConfig
from image_janitor.policy import DeletionPolicy
from image_janitor.runtime import RuntimeOperationError


def make_policy(runtime, **config):
    history = ImageHistory()
    return DeletionPolicy(PolicyConfig(**config), runtime, history), history


class TestDeletionPolicy:
    """Test DeletionPolicy.try_delete"""

    def test_deletes_unused_image(self, runtime):
        """An unused, unprotected image is removed and forgotten"""
        image_id = runtime.add_image("sha256:a", repo_tags=["app:v1"])
        policy, history = make_policy(runtime)
        history.touch(image_id, 0)

        assert policy.try_delete(image_id) is Decision.DELETED
        assert runtime.removed == [image_id]
        assert image_id not in runtime.images
        assert image_id not in history

    @pytest.mark.parametrize("enforcing", [False, True])
    def test_excluded_image_is_never_touched(self, runtime, enforcing):
        """Exclusion wins over age, usage and enforcing mode"""
        image_id = runtime.add_image("sha256:a", repo_tags=["staging-app:v1"])
        policy, history = make_policy(
            runtime, enforcing=enforcing, exclusions=ExclusionRules(image_name_prefix=("staging-",))
        )
        history.touch(image_id, 0)

        with patch.object(runtime, "containers_referencing", wraps=runtime.containers_referencing) as probe:
            assert policy.try_delete(image_id) is Decision.EXCLUDED
            probe.assert_not_called()

        assert runtime.removed == []
        assert history.last_seen(image_id) == 0

    def test_excluded_by_label(self, runtime):
        image_id = runtime.add_image("sha256:a", labels={"exclude": "true"})
        policy, _ = make_policy(runtime, exclusions=ExclusionRules(image_label=("true",)))

        assert policy.try_delete(image_id) is Decision.EXCLUDED
        assert runtime.removed == []

    @pytest.mark.parametrize("enforcing", [False, True])
    def test_running_container_blocks_deletion(self, runtime, enforcing):
        image_id = runtime.add_image("sha256:a", running=1, stopped=3)
        policy, history = make_policy(runtime, enforcing=enforcing)
        history.touch(image_id, 0)

        assert policy.try_delete(image_id) is Decision.RUNNING
        assert runtime.removed == []
        assert image_id in history

    def test_stopped_only_is_kept_when_lenient(self, runtime):
        """Deterministic across repeated attempts"""
        image_id = runtime.add_image("sha256:a", stopped=1)
        policy, _ = make_policy(runtime, enforcing=False)

        for _ in range(3):
            assert policy.try_delete(image_id) is Decision.STOPPED
        assert runtime.removed == []

    def test_stopped_only_is_deleted_when_enforcing(self, runtime):
        image_id = runtime.add_image("sha256:a", stopped=1)
        policy, _ = make_policy(runtime, enforcing=True)

        assert policy.try_delete(image_id) is Decision.DELETED
        assert runtime.removed == [image_id]

    def test_running_probe_failure_blocks_deletion(self, runtime):
        image_id = runtime.add_image("sha256:a")
        runtime.failing.add("containers_running")
        policy, _ = make_policy(runtime, enforcing=True)

        assert policy.try_delete(image_id) is Decision.RUNNING
        assert runtime.removed == []

    def test_inspect_failure_skips(self, runtime):
        """Exclusion rules cannot be evaluated, so the image is left alone"""
        image_id = runtime.add_image("sha256:a")
        runtime.failing.add("image_references")
        policy, _ = make_policy(runtime)

        assert policy.try_delete(image_id) is Decision.PROBE_FAILED
        assert runtime.removed == []

    def test_dry_run_removes_nothing(self, runtime):
        image_id = runtime.add_image("sha256:a", repo_tags=["app:v1"])
        policy, history = make_policy(runtime, dry_run=True)
        history.touch(image_id, 0)

        assert policy.try_delete(image_id) is Decision.DRY_RUN
        assert runtime.removed == []
        assert image_id in history

    def test_dry_run_keeps_history_of_missing_image(self, runtime):
        image_id = "sha256:already-removed"
        policy, history = make_policy(runtime, dry_run=True)
        history.touch(image_id, 0)

        assert policy.try_delete(image_id) is Decision.GONE
        assert history.last_seen(image_id) == 0
        assert runtime.removed == []

    def test_remove_error_keeps_history(self, runtime):
        """A failed removal is retried on the next sweep"""
        image_id = runtime.add_image("sha256:a")
        runtime.failing.add("remove_image")
        policy, history = make_policy(runtime)
        history.touch(image_id, 0)

        assert policy.try_delete(image_id) is Decision.FAILED
        assert history.last_seen(image_id) == 0

    def test_partial_untag_keeps_history(self, runtime):
        image_id = runtime.add_image("sha256:a", repo_tags=["app:v1"])
        runtime.undeletable.add(image_id)
        policy, history = make_policy(runtime)
        history.touch(image_id, 0)

        assert policy.try_delete(image_id) is Decision.FAILED
        assert image_id in history

    def test_remove_error_but_image_gone(self, runtime):
        """History follows the daemon's state, not the removal call's result"""
        image_id = runtime.add_image("sha256:a")
        policy, history = make_policy(runtime)
        history.touch(image_id, 0)

        def remove_then_fail(image_id, force):
            runtime.images.pop(image_id)
            raise RuntimeOperationError("remove image", Exception("conflict"))

        with patch.object(runtime, "remove_image", side_effect=remove_then_fail):
            assert policy.try_delete(image_id) is Decision.DELETED

        assert image_id not in history

    def test_lookup_failure_after_removal_keeps_history(self, runtime):
        image_id = runtime.add_image("sha256:a")
        policy, history = make_policy(runtime)
        history.touch(image_id, 0)

        resolve = runtime.resolve_image
        calls = []

        def flaky_resolve(ref):
            calls.append(ref)
            if len(calls) > 1:
                raise RuntimeOperationError("inspect image", Exception("timeout"))
            return resolve(ref)

        with patch.object(runtime, "resolve_image", side_effect=flaky_resolve):
            assert policy.try_delete(image_id) is Decision.FAILED

        assert image_id in history

    def test_try_delete_is_idempotent(self, runtime):
        """Deleting an already deleted image is harmless and leaves no stale entry"""
        image_id = runtime.add_image("sha256:a")
        policy, history = make_policy(runtime)
        history.touch(image_id, 0)

        assert policy.try_delete(image_id) is Decision.DELETED
        history.touch(image_id, 10)  # stale entry
        assert policy.try_delete(image_id) is Decision.GONE
        assert image_id not in history
        assert runtime.removed == [image_id]
