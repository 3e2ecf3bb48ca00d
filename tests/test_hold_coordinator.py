from __future__ import annotations

import unittest
from unittest.mock import patch

from db_support import SHOP, add_note, install_shop, make_session
from holdgate.errors import GatewayError, ReleaseRefusedError, ShopNotInstalledError
from holdgate.services import acknowledgment_service, hold_coordinator
from holdgate.services.hold_coordinator import ItemOutcome
from holdgate.services.mock_fulfillment_gateway import MockFulfillmentGateway
from holdgate.services.order_notes import HOLD_WARNING_MARKER
from holdgate.services.release_authorization_service import is_release_authorized
from holdgate.services.settings_service import HoldPolicy

PRODUCT_A = 'gid://shopify/Product/1'
PRODUCT_B = 'gid://shopify/Product/2'
BLOCKING = HoldPolicy(block_fulfillment=True)


class HoldCoordinatorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.addCleanup(self.db.close)
        install_shop(self.db)
        self.gateway = MockFulfillmentGateway()

    def _ack(self, note, session_id='s1', order_id='1001'):
        return acknowledgment_service.upsert_acknowledgment(
            self.db,
            shop=SHOP,
            order_id=order_id,
            note_id=note.id,
            product_id=note.product_id,
            actor='staff',
            session_id=session_id,
        )

    def _view(self, session_id, product_ids=None, policy=BLOCKING):
        return hold_coordinator.reconcile_on_view(
            self.db,
            self.gateway,
            shop=SHOP,
            order_id='1001',
            product_ids=product_ids or [PRODUCT_A],
            session_id=session_id,
            policy=policy,
        )


class NeedsHoldTests(HoldCoordinatorTestCase):
    def test_disabled_blocking_never_needs_hold(self) -> None:
        add_note(self.db, PRODUCT_A)
        self.assertFalse(
            hold_coordinator.needs_hold(self.db, shop=SHOP, product_ids=[PRODUCT_A], policy=HoldPolicy())
        )

    def test_hold_needed_only_when_notes_exist(self) -> None:
        add_note(self.db, PRODUCT_A)
        self.assertTrue(hold_coordinator.needs_hold(self.db, shop=SHOP, product_ids=[PRODUCT_A], policy=BLOCKING))
        self.assertFalse(hold_coordinator.needs_hold(self.db, shop=SHOP, product_ids=[PRODUCT_B], policy=BLOCKING))


class ApplyHoldTests(HoldCoordinatorTestCase):
    def test_only_open_and_scheduled_are_held(self) -> None:
        open_id, scheduled_id, closed_id, held_id = self.gateway.add_order(
            '1001', statuses=['OPEN', 'SCHEDULED', 'CLOSED', 'ON_HOLD']
        )

        outcome = hold_coordinator.apply_hold(self.gateway, order_id='1001')

        self.assertTrue(outcome.success)
        self.assertEqual(
            [r.outcome for r in outcome.results],
            [ItemOutcome.OK, ItemOutcome.OK, ItemOutcome.SKIPPED, ItemOutcome.SKIPPED],
        )
        self.assertEqual(self.gateway.status_of(open_id), 'ON_HOLD')
        self.assertEqual(self.gateway.status_of(scheduled_id), 'ON_HOLD')
        self.assertEqual(self.gateway.status_of(closed_id), 'CLOSED')
        self.assertNotIn(('apply_hold', held_id), self.gateway.calls)
        self.assertIn(HOLD_WARNING_MARKER, self.gateway.order_notes['1001'])

    def test_one_failure_does_not_stop_the_others(self) -> None:
        first_id, second_id = self.gateway.add_order('1001', statuses=['OPEN', 'OPEN'])
        self.gateway.failing_fulfillment_orders.add(first_id)

        outcome = hold_coordinator.apply_hold(self.gateway, order_id='1001')

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.results[0].outcome, ItemOutcome.FAILED)
        self.assertEqual(outcome.results[0].error, 'Fulfillment order cannot be held')
        self.assertEqual(outcome.results[1].outcome, ItemOutcome.OK)
        self.assertEqual(self.gateway.status_of(second_id), 'ON_HOLD')

    def test_unreachable_gateway_is_reported_not_raised(self) -> None:
        self.gateway.unreachable = True

        outcome = hold_coordinator.apply_hold(self.gateway, order_id='1001')

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.results, [])
        self.assertIn('unreachable', outcome.error)


class ReconcileOnViewTests(HoldCoordinatorTestCase):
    def test_first_view_applies_hold_and_leaves_closed_untouched(self) -> None:
        add_note(self.db, PRODUCT_A)
        open_id, closed_id = self.gateway.add_order('1001', statuses=['OPEN', 'CLOSED'])

        result = self._view('s1')

        self.assertTrue(result.hold_applied)
        self.assertFalse(result.acknowledgements_cleared)
        self.assertEqual(self.gateway.status_of(open_id), 'ON_HOLD')
        self.assertEqual(self.gateway.status_of(closed_id), 'CLOSED')

    def test_same_session_keeps_acknowledgments(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        self.gateway.add_order('1001', statuses=['ON_HOLD'])
        self._ack(note, session_id='A')

        result = self._view('A')

        self.assertFalse(result.hold_applied)
        self.assertFalse(result.acknowledgements_cleared)
        self.assertEqual(result.reason, 'same session')
        self.assertEqual(len(acknowledgment_service.list_for_order(self.db, shop=SHOP, order_id='1001')), 1)
        self.assertEqual(self.gateway.calls, [])

    def test_new_session_clears_acknowledgments_and_reapplies_hold(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        (fulfillment_order_id,) = self.gateway.add_order('1001', statuses=['OPEN'])
        self._ack(note, session_id='A')

        result = self._view('B')

        self.assertTrue(result.hold_applied)
        self.assertTrue(result.acknowledgements_cleared)
        self.assertEqual(result.reason, 'hold re-applied')
        self.assertEqual(acknowledgment_service.list_for_order(self.db, shop=SHOP, order_id='1001'), [])
        self.assertEqual(self.gateway.status_of(fulfillment_order_id), 'ON_HOLD')

    def test_already_held_order_still_gets_the_warning(self) -> None:
        add_note(self.db, PRODUCT_A)
        self.gateway.add_order('1001', statuses=['ON_HOLD'], note='Leave at door')

        result = self._view('s1')

        self.assertFalse(result.hold_applied)
        self.assertEqual(result.reason, 'already on hold or not eligible')
        self.assertTrue(self.gateway.order_notes['1001'].startswith(HOLD_WARNING_MARKER))
        self.assertTrue(self.gateway.order_notes['1001'].endswith('Leave at door'))

    def test_finished_order_is_left_alone(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        self.gateway.add_order('1001', statuses=['CLOSED', 'CANCELLED'])
        self._ack(note, session_id='A')

        result = self._view('B')

        self.assertFalse(result.hold_applied)
        self.assertEqual(result.reason, 'order not fulfillable')
        self.assertEqual(len(acknowledgment_service.list_for_order(self.db, shop=SHOP, order_id='1001')), 1)
        self.assertEqual(self.gateway.calls, [])

    def test_no_notes_or_blocking_disabled_is_a_no_op(self) -> None:
        self.assertEqual(self._view('s1').reason, 'no notes')
        add_note(self.db, PRODUCT_A)
        self.assertEqual(self._view('s1', policy=HoldPolicy()).reason, 'blockFulfillment disabled')
        self.assertEqual(self.gateway.calls, [])


class ReleaseHoldTests(HoldCoordinatorTestCase):
    def test_refuses_without_remote_call_while_notes_pending(self) -> None:
        add_note(self.db, PRODUCT_A)
        self.gateway.add_order('1001', statuses=['ON_HOLD'])

        with self.assertRaises(ReleaseRefusedError):
            hold_coordinator.release_hold(
                self.db, self.gateway, shop=SHOP, order_id='1001', product_ids=[PRODUCT_A]
            )

        self.assertEqual(self.gateway.calls, [])
        self.assertFalse(is_release_authorized(self.db, shop=SHOP, order_id='1001'))

    def test_releases_only_held_fulfillment_orders(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        held_id, closed_id = self.gateway.add_order('1001', statuses=['ON_HOLD', 'CLOSED'])
        self._ack(note)

        outcome = hold_coordinator.release_hold(
            self.db, self.gateway, shop=SHOP, order_id='1001', product_ids=[PRODUCT_A]
        )

        self.assertTrue(outcome.success)
        self.assertEqual([r.outcome for r in outcome.results], [ItemOutcome.OK, ItemOutcome.SKIPPED])
        self.assertEqual(self.gateway.status_of(held_id), 'OPEN')
        self.assertEqual(self.gateway.status_of(closed_id), 'CLOSED')
        self.assertNotIn(('release_hold', closed_id), self.gateway.calls)
        self.assertTrue(is_release_authorized(self.db, shop=SHOP, order_id='1001'))

    def test_release_survives_note_cleanup_failure(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        (held_id,) = self.gateway.add_order('1001', statuses=['ON_HOLD'])
        self._ack(note)

        with patch.object(self.gateway, 'remove_order_note_matching', side_effect=GatewayError('timeout')):
            outcome = hold_coordinator.release_hold(
                self.db, self.gateway, shop=SHOP, order_id='1001', product_ids=[PRODUCT_A]
            )
        self.assertTrue(outcome.success)
        self.assertEqual(self.gateway.status_of(held_id), 'OPEN')

    def test_advisory_note_kept_when_nothing_was_released(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        self.gateway.add_order('1001', statuses=['OPEN'], note=f'{HOLD_WARNING_MARKER} check notes')
        self._ack(note)

        outcome = hold_coordinator.release_hold(
            self.db, self.gateway, shop=SHOP, order_id='1001', product_ids=[PRODUCT_A]
        )

        self.assertTrue(outcome.success)
        self.assertIn(HOLD_WARNING_MARKER, self.gateway.order_notes['1001'])

    def test_advisory_note_removed_after_partial_release(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        released_id, stuck_id = self.gateway.add_order(
            '1001', statuses=['ON_HOLD', 'ON_HOLD'], note=f'{HOLD_WARNING_MARKER} check notes'
        )
        self.gateway.failing_fulfillment_orders.add(stuck_id)
        self._ack(note)

        outcome = hold_coordinator.release_hold(
            self.db, self.gateway, shop=SHOP, order_id='1001', product_ids=[PRODUCT_A]
        )

        self.assertFalse(outcome.success)
        self.assertEqual(self.gateway.status_of(released_id), 'OPEN')
        self.assertNotIn(HOLD_WARNING_MARKER, self.gateway.order_notes['1001'])


class EndToEndTests(HoldCoordinatorTestCase):
    def test_two_notes_one_fulfillment_order(self) -> None:
        note_a = add_note(self.db, PRODUCT_A, 'Fragile')
        note_b = add_note(self.db, PRODUCT_B, 'Cold chain')
        (fulfillment_order_id,) = self.gateway.add_order('1001', statuses=['OPEN'])
        products = [PRODUCT_A, PRODUCT_B]

        view = self._view('s1', product_ids=products)
        self.assertTrue(view.hold_applied)
        self.assertEqual(self.gateway.status_of(fulfillment_order_id), 'ON_HOLD')

        first = hold_coordinator.record_acknowledgment(
            self.db,
            shop=SHOP,
            order_id='1001',
            note_id=note_a.id,
            actor='staff',
            session_id='s1',
            policy=BLOCKING,
            gateway_loader=lambda: self.gateway,
            all_product_ids=products,
        )
        self.assertFalse(first.all_acknowledged)
        self.assertFalse(first.hold_released)
        self.assertEqual(self.gateway.status_of(fulfillment_order_id), 'ON_HOLD')

        second = hold_coordinator.record_acknowledgment(
            self.db,
            shop=SHOP,
            order_id='1001',
            note_id=note_b.id,
            actor='staff',
            session_id='s1',
            policy=BLOCKING,
            gateway_loader=lambda: self.gateway,
            all_product_ids=products,
        )
        self.assertTrue(second.all_acknowledged)
        self.assertTrue(second.hold_released)
        self.assertEqual(self.gateway.status_of(fulfillment_order_id), 'OPEN')
        self.assertNotIn(HOLD_WARNING_MARKER, self.gateway.order_notes['1001'])

        # re-render by the same viewer must not re-hold
        again = self._view('s1', product_ids=products)
        self.assertEqual(again.reason, 'same session')
        self.assertEqual(self.gateway.status_of(fulfillment_order_id), 'OPEN')

    def test_product_set_is_loaded_remotely_when_not_supplied(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        (fulfillment_order_id,) = self.gateway.add_order('1001', statuses=['ON_HOLD'], product_ids=[PRODUCT_A])

        outcome = hold_coordinator.record_acknowledgment(
            self.db,
            shop=SHOP,
            order_id='1001',
            note_id=note.id,
            actor='staff',
            session_id='s1',
            policy=BLOCKING,
            gateway_loader=lambda: self.gateway,
        )

        self.assertTrue(outcome.hold_released)
        self.assertEqual(self.gateway.status_of(fulfillment_order_id), 'OPEN')

    def _acknowledge(self, note, all_product_ids):
        return hold_coordinator.record_acknowledgment(
            self.db,
            shop=SHOP,
            order_id='1001',
            note_id=note.id,
            actor='staff',
            session_id='s1',
            policy=BLOCKING,
            gateway_loader=lambda: self.gateway,
            all_product_ids=all_product_ids,
        )

    def test_supplied_products_are_joined_with_order_line_items(self) -> None:
        note_a = add_note(self.db, PRODUCT_A)
        add_note(self.db, PRODUCT_B)
        (fulfillment_order_id,) = self.gateway.add_order(
            '1001', statuses=['ON_HOLD'], product_ids=[PRODUCT_A, PRODUCT_B]
        )

        outcome = self._acknowledge(note_a, [PRODUCT_A])

        self.assertFalse(outcome.all_acknowledged)
        self.assertFalse(outcome.hold_released)
        self.assertEqual(self.gateway.status_of(fulfillment_order_id), 'ON_HOLD')

    def test_no_release_when_line_items_cannot_be_loaded(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        (fulfillment_order_id,) = self.gateway.add_order('1001', statuses=['ON_HOLD'], product_ids=[PRODUCT_A])
        self.gateway.unreachable = True

        outcome = self._acknowledge(note, [PRODUCT_A])

        self.assertTrue(outcome.all_acknowledged)
        self.assertFalse(outcome.hold_released)
        self.gateway.unreachable = False
        self.assertEqual(self.gateway.status_of(fulfillment_order_id), 'ON_HOLD')
        self.assertEqual(len(acknowledgment_service.list_for_order(self.db, shop=SHOP, order_id='1001')), 1)

    def test_photo_proof_policy(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        with self.assertRaises(ValueError):
            hold_coordinator.record_acknowledgment(
                self.db,
                shop=SHOP,
                order_id='1001',
                note_id=note.id,
                actor='staff',
                session_id='s1',
                policy=HoldPolicy(require_photo_proof=True),
                gateway_loader=lambda: self.gateway,
            )


class ResetAndWebhookTests(HoldCoordinatorTestCase):
    def test_reset_clears_and_reapplies(self) -> None:
        note = add_note(self.db, PRODUCT_A)
        (fulfillment_order_id,) = self.gateway.add_order('1001', statuses=['OPEN'])
        self._ack(note)

        outcome = hold_coordinator.reset_acknowledgments(
            self.db,
            shop=SHOP,
            order_id='1001',
            product_ids=[PRODUCT_A],
            policy=BLOCKING,
            gateway_loader=lambda: self.gateway,
        )

        self.assertEqual(outcome.deleted_count, 1)
        self.assertTrue(outcome.hold_applied)
        self.assertEqual(self.gateway.status_of(fulfillment_order_id), 'ON_HOLD')

    def test_reset_reports_missing_admin_session(self) -> None:
        add_note(self.db, PRODUCT_A)

        def _missing():
            raise ShopNotInstalledError(SHOP)

        outcome = hold_coordinator.reset_acknowledgments(
            self.db,
            shop=SHOP,
            order_id='1001',
            product_ids=[PRODUCT_A],
            policy=BLOCKING,
            gateway_loader=_missing,
        )

        self.assertFalse(outcome.hold_applied)
        self.assertEqual(outcome.hold_error, 'Failed to apply hold')

    def test_new_order_hold_swallows_errors(self) -> None:
        add_note(self.db, PRODUCT_A)

        def _broken():
            raise RuntimeError('boom')

        self.assertIsNone(
            hold_coordinator.hold_new_order(
                self.db,
                shop=SHOP,
                order_id='1001',
                product_ids=[PRODUCT_A],
                policy=BLOCKING,
                gateway_loader=_broken,
            )
        )

    def test_new_order_without_notes_is_not_held(self) -> None:
        self.assertIsNone(
            hold_coordinator.hold_new_order(
                self.db,
                shop=SHOP,
                order_id='1001',
                product_ids=[PRODUCT_B],
                policy=BLOCKING,
                gateway_loader=lambda: self.gateway,
            )
        )
        self.assertEqual(self.gateway.calls, [])


if __name__ == '__main__':
    unittest.main()
