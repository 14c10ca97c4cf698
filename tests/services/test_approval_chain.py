"""Tests for ApprovalChainResolver: ordering and site-scoped staffing."""

from payorder_kernel.services.approval_chain import ApprovalChainResolver

from tests.conftest import MANAGER_ID, TEST_ACTOR_ID, TREASURER_ID


def _resolve(uow_factory, site_id, group="payment_order"):
    with uow_factory() as uow:
        return ApprovalChainResolver(uow.session).resolve_chain(site_id, group)


class TestResolveChain:
    def test_steps_ordered_by_level_then_sequence(self, uow_factory, ledger):
        ledger.site(10)
        ledger.profile("DIRECTOR", level=3)
        ledger.profile("AUDIT", level=2, sequence=2)
        ledger.profile("MANAGER", level=2, sequence=1)
        ledger.profile("TREASURER", level=1)

        chain = _resolve(uow_factory, 10)

        assert [s.profile_code for s in chain.steps] == ["TREASURER", "MANAGER", "AUDIT", "DIRECTOR"]

    def test_approvers_scoped_to_site(self, uow_factory, ledger):
        ledger.site(10)
        ledger.site(11)
        treasurer = ledger.profile("TREASURER", level=1)
        ledger.bind(treasurer, TREASURER_ID, 10)
        ledger.bind(treasurer, 777, 10)
        ledger.bind(treasurer, MANAGER_ID, 11)

        (step,) = _resolve(uow_factory, 10).steps

        assert step.approver_ids == frozenset({TREASURER_ID, 777})
        assert _resolve(uow_factory, 11).steps[0].approver_ids == frozenset({MANAGER_ID})

    def test_other_groups_ignored(self, uow_factory, ledger):
        ledger.site(10)
        ledger.profile("TREASURER", level=1)
        ledger.profile("PURCHASING", level=1, workflow_group="purchase_order")

        chain = _resolve(uow_factory, 10)

        assert [s.profile_code for s in chain.steps] == ["TREASURER"]

    def test_inactive_profiles_and_bindings_ignored(self, uow_factory, ledger, session):
        ledger.site(10)
        retired = ledger.profile("RETIRED", level=1)
        treasurer = ledger.profile("TREASURER", level=1, sequence=2)
        binding = ledger.bind(treasurer, TREASURER_ID, 10)
        retired.soft_delete(TEST_ACTOR_ID)
        binding.soft_delete(TEST_ACTOR_ID)
        session.commit()

        chain = _resolve(uow_factory, 10)

        assert [s.profile_code for s in chain.steps] == ["TREASURER"]
        assert chain.unstaffed_steps == chain.steps

    def test_empty_chain_is_not_an_error(self, uow_factory, ledger):
        ledger.site(10)

        chain = _resolve(uow_factory, 10)

        assert chain.is_empty
        assert chain.site_id == 10
        assert chain.workflow_group == "payment_order"
