"""
Request lifecycle tests - creation, responses, fulfilment, cancellation and expiry
"""
import threading
from datetime import timedelta

import pytest

from bloodlink.database.schemas import RequestStatus, Urgency
from bloodlink.database.storage import InMemoryRequestStore, JsonRequestStore
from bloodlink.services.errors import (
    AuthorizationError,
    DuplicateResponseError,
    IncompatibleBloodTypeError,
    InvalidStateError,
    NotAResponderError,
    NotFoundError,
    ValidationError,
)
from bloodlink.services.lifecycle import DEFAULT_RESPONSE_NOTE, LifecycleController, compute_expiry
from tests.conftest import START, make_user, request_payload


def create(controller, users, **overrides):
    request, _ = controller.create(users["recipient"], request_payload(**overrides))
    return request


@pytest.mark.parametrize("urgency,hours", [
    (Urgency.CRITICAL, 2),
    (Urgency.URGENT, 6),
    (Urgency.MODERATE, 24),
    (Urgency.ROUTINE, 72),
])
def test_compute_expiry(urgency, hours):
    assert compute_expiry(START, urgency) == START + timedelta(hours=hours)


def test_create_request(controller, users, store):
    """Test a new request is active, has no responses, and reports matching donors"""
    request, matching = controller.create(users["recipient"], request_payload())

    assert request.status == RequestStatus.ACTIVE
    assert request.responses == []
    assert request.requested_by == users["recipient"].id
    assert request.created_at == START
    assert request.expires_at == START + timedelta(hours=2)
    # A+ receives from A+, A-, O+, O-; only the O- and A+ donors are usable
    assert matching == 2
    assert store.get(request.id) is not None


def test_create_request_accepts_loose_shapes(controller, users):
    """Test camelCase keys and plain-string hospital/physician are canonicalized"""
    payload = {
        "patientName": "Jane Roe",
        "bloodType": " ab+ ",
        "unitsNeeded": "3",
        "urgency": "Routine",
        "hospital": "St. Mary's",
        "attendingPhysician": "Dr. Grey",
        "contactPhone": "+1 555 0123",
        "medicalReason": "Anemia",
    }
    request, _ = controller.create(users["recipient"], payload)

    assert request.blood_type.value == "AB+"
    assert request.units_needed == 3
    assert request.urgency == Urgency.ROUTINE
    assert request.hospital.name == "St. Mary's"
    assert request.hospital.contact_number == "+1 555 0123"
    assert request.attending_physician.contact == "+1 555 0123"


def test_create_request_lists_every_invalid_field(controller, users, store):
    """Test validation reports all failing fields, not just the first"""
    payload = request_payload(units_needed=0, blood_type="C+", contact_phone="call me")
    payload.pop("medical_reason")

    with pytest.raises(ValidationError) as excinfo:
        controller.create(users["recipient"], payload)

    fields = {f["field"] for f in excinfo.value.fields}
    assert {"units_needed", "blood_type", "contact_phone", "medical_reason"} <= fields
    assert store.list() == []


def test_create_request_with_no_matching_donors(controller, users, directory):
    """Test zero matching donors is a normal outcome"""
    for user in directory.list_donors():
        directory.update(user.id, lambda u: setattr(u.donor_info, "is_available", False))

    request, matching = controller.create(users["recipient"], request_payload())
    assert matching == 0
    assert request.status == RequestStatus.ACTIVE


def test_respond_and_accept_happy_path(controller, users):
    """Test O- donor responds to an A+ request and is accepted"""
    request = create(controller, users)

    response = controller.respond(request.id, users["o_neg"])
    assert response.donor_id == users["o_neg"].id
    assert response.notes == DEFAULT_RESPONSE_NOTE
    assert response.response_date == START

    fulfilled = controller.accept_donor(request.id, users["recipient"], users["o_neg"].id)
    assert fulfilled.status == RequestStatus.FULFILLED
    assert fulfilled.fulfilled_by == users["o_neg"].id
    assert fulfilled.fulfilled_at == START

    with pytest.raises(InvalidStateError):
        controller.respond(request.id, users["a_pos"])


def test_respond_keeps_notes(controller, users):
    request = create(controller, users)
    response = controller.respond(request.id, users["a_pos"], "  On my way  ")
    assert response.notes == "On my way"


def test_respond_incompatible(controller, users):
    """Test an A+ donor cannot respond to an O+ request"""
    request = create(controller, users, blood_type="O+")

    with pytest.raises(IncompatibleBloodTypeError):
        controller.respond(request.id, users["a_pos"])
    assert controller.get(request.id).responses == []


def test_respond_twice_is_duplicate(controller, users):
    request = create(controller, users)
    controller.respond(request.id, users["o_neg"])

    with pytest.raises(DuplicateResponseError):
        controller.respond(request.id, users["o_neg"])
    assert len(controller.get(request.id).responses) == 1


def test_respond_to_missing_request(controller, users):
    with pytest.raises(NotFoundError):
        controller.respond("does-not-exist", users["o_neg"])


def test_responses_keep_acceptance_order(controller, users, clock):
    request = create(controller, users, blood_type="AB+")
    for key in ("b_pos", "o_neg", "ab_neg"):
        controller.respond(request.id, users[key])
        clock.advance(minutes=1)

    donor_ids = [r.donor_id for r in controller.get(request.id).responses]
    assert donor_ids == [users["b_pos"].id, users["o_neg"].id, users["ab_neg"].id]


def test_accept_requires_owner_or_admin(controller, users):
    request = create(controller, users)
    controller.respond(request.id, users["o_neg"])

    with pytest.raises(AuthorizationError):
        controller.accept_donor(request.id, users["other_recipient"], users["o_neg"].id)
    assert controller.get(request.id).status == RequestStatus.ACTIVE

    fulfilled = controller.accept_donor(request.id, users["admin"], users["o_neg"].id)
    assert fulfilled.status == RequestStatus.FULFILLED


def test_accept_non_responder(controller, users):
    request = create(controller, users)
    controller.respond(request.id, users["o_neg"])

    with pytest.raises(NotAResponderError):
        controller.accept_donor(request.id, users["recipient"], users["a_pos"].id)
    assert controller.get(request.id).status == RequestStatus.ACTIVE


def test_cancel(controller, users):
    request = create(controller, users)
    controller.respond(request.id, users["o_neg"])

    with pytest.raises(AuthorizationError):
        controller.cancel(request.id, users["o_neg"])

    cancelled = controller.cancel(request.id, users["recipient"])
    assert cancelled.status == RequestStatus.CANCELLED
    # Responses are never removed
    assert len(cancelled.responses) == 1


@pytest.mark.parametrize("finish", ["fulfil", "cancel", "expire"])
def test_terminal_states_are_absorbing(controller, users, clock, finish):
    """Test no operation leaves a terminal state"""
    request = create(controller, users)
    controller.respond(request.id, users["o_neg"])
    if finish == "fulfil":
        controller.accept_donor(request.id, users["recipient"], users["o_neg"].id)
    elif finish == "cancel":
        controller.cancel(request.id, users["recipient"])
    else:
        clock.advance(hours=3)
        controller.expire()
    status = controller.get(request.id).status

    with pytest.raises(InvalidStateError):
        controller.respond(request.id, users["a_pos"])
    with pytest.raises(InvalidStateError):
        controller.accept_donor(request.id, users["recipient"], users["o_neg"].id)
    with pytest.raises(InvalidStateError):
        controller.cancel(request.id, users["recipient"])
    controller.expire()

    assert controller.get(request.id).status == status


def test_expire_sweep_is_idempotent(controller, users, clock):
    critical = create(controller, users, urgency="critical")
    routine = create(controller, users, urgency="routine")

    clock.advance(hours=2)
    expired = controller.expire()
    assert [r.id for r in expired] == [critical.id]
    assert controller.expire() == []

    assert controller.get(critical.id).status == RequestStatus.EXPIRED
    assert controller.get(routine.id).status == RequestStatus.ACTIVE


def test_expire_with_explicit_time(controller, users):
    request = create(controller, users, urgency="urgent")
    assert controller.expire(START + timedelta(hours=5)) == []
    assert [r.id for r in controller.expire(START + timedelta(hours=6))] == [request.id]


def test_lazy_expiry_blocks_writes_before_sweep(controller, users, clock, store):
    """Test a past-expiry request rejects writes even if no sweep has run"""
    request = create(controller, users)
    clock.advance(hours=2, seconds=1)

    # Reads already see it as expired
    assert controller.get(request.id).status == RequestStatus.EXPIRED
    assert store.get(request.id).status == RequestStatus.ACTIVE

    with pytest.raises(InvalidStateError):
        controller.respond(request.id, users["o_neg"])
    assert store.get(request.id).status == RequestStatus.EXPIRED
    assert store.get(request.id).responses == []


def test_update_status(controller, users):
    request = create(controller, users)
    controller.respond(request.id, users["a_pos"])

    with pytest.raises(ValidationError):
        controller.update_status(request.id, users["recipient"], "fulfilled")
    with pytest.raises(ValidationError):
        controller.update_status(request.id, users["recipient"], "expired")
    with pytest.raises(ValidationError):
        controller.update_status(request.id, users["recipient"], "active")

    fulfilled = controller.update_status(request.id, users["recipient"], "fulfilled", users["a_pos"].id)
    assert fulfilled.status == RequestStatus.FULFILLED


def test_list_requests_filters(controller, users, clock):
    first = create(controller, users, blood_type="A+", urgency="routine")
    clock.advance(minutes=5)
    second = create(controller, users, blood_type="B-", urgency="urgent",
                    hospital={"name": "North Clinic", "address": "1 Elm Rd, Capital City", "contact_number": "555"})
    controller.cancel(first.id, users["recipient"])

    active, pages, total = controller.list_requests()
    assert [r.id for r in active] == [second.id]
    assert (pages, total) == (1, 1)

    everything, _, total = controller.list_requests(status="all")
    assert [r.id for r in everything] == [second.id, first.id]

    by_city, _, _ = controller.list_requests(status="all", city="capital")
    assert [r.id for r in by_city] == [second.id]

    by_type, _, _ = controller.list_requests(status="all", blood_type="a+")
    assert [r.id for r in by_type] == [first.id]

    with pytest.raises(ValidationError):
        controller.list_requests(blood_type="Q-")


def test_list_compatible_donors(controller, users):
    request = create(controller, users, blood_type="A+")
    donors = controller.list_compatible_donors(request.id)
    # Ranked by donation history
    assert [d.id for d in donors] == [users["o_neg"].id, users["a_pos"].id]


def test_list_matching_requests_for_donor(controller, users, clock):
    routine = create(controller, users, blood_type="AB+", urgency="routine")
    clock.advance(minutes=1)
    critical = create(controller, users, blood_type="A+", urgency="critical")
    clock.advance(minutes=1)
    incompatible = create(controller, users, blood_type="O+", urgency="critical")
    clock.advance(minutes=1)
    answered = create(controller, users, blood_type="AB+", urgency="urgent")
    controller.respond(answered.id, users["a_pos"])

    matching = controller.list_matching_requests_for_donor(users["a_pos"])
    assert [r.id for r in matching] == [critical.id, routine.id]
    assert incompatible.id not in [r.id for r in matching]

    clock.advance(hours=2)
    matching = controller.list_matching_requests_for_donor(users["a_pos"])
    assert [r.id for r in matching] == [routine.id]


def test_donor_views_require_donor_role(controller, users):
    with pytest.raises(AuthorizationError):
        controller.list_matching_requests_for_donor(users["recipient"])
    with pytest.raises(AuthorizationError):
        controller.list_my_responses(users["admin"])


def test_list_my_requests_and_responses(controller, users, clock):
    request = create(controller, users)
    controller.create(users["other_recipient"], request_payload())
    controller.respond(request.id, users["o_neg"], "Can come tonight")

    mine = controller.list_my_requests(users["recipient"])
    assert [r.id for r in mine] == [request.id]

    history = controller.list_my_responses(users["o_neg"])
    assert len(history) == 1
    assert history[0].notes == "Can come tonight"
    assert history[0].request.id == request.id
    assert history[0].request.status == RequestStatus.ACTIVE

    clock.advance(hours=3)
    assert controller.list_my_responses(users["o_neg"])[0].request.status == RequestStatus.EXPIRED
    assert controller.list_my_requests(users["recipient"])[0].status == RequestStatus.EXPIRED


def test_concurrent_duplicate_responses(controller, users):
    """Test the same donor responding from many threads yields one response"""
    request = create(controller, users)
    outcomes = []

    def respond():
        try:
            controller.respond(request.id, users["o_neg"])
            outcomes.append("ok")
        except DuplicateResponseError:
            outcomes.append("duplicate")

    threads = [threading.Thread(target=respond) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("duplicate") == 7
    assert len(controller.get(request.id).responses) == 1


def test_concurrent_accepts_have_one_winner(controller, users):
    """Test competing accepts fulfil the request exactly once"""
    request = create(controller, users, blood_type="AB+")
    donors = [users["o_neg"], users["a_pos"], users["b_pos"], users["ab_neg"]]
    for donor in donors:
        controller.respond(request.id, donor)
    winners = []
    losers = []

    def accept(donor_id):
        try:
            controller.accept_donor(request.id, users["recipient"], donor_id)
            winners.append(donor_id)
        except InvalidStateError:
            losers.append(donor_id)

    threads = [threading.Thread(target=accept, args=(d.id,)) for d in donors]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1
    assert len(losers) == 3
    assert controller.get(request.id).fulfilled_by == winners[0]


class TickingClock:
    """Clock that moves forward one second on every read"""
    def __init__(self):
        self.current = START
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.current = self.current + timedelta(seconds=1)
            return self.current


@pytest.mark.parametrize("backend", ["memory", "json"])
def test_concurrent_responses_from_many_donors(tmp_path, directory, users, backend):
    """Test simultaneous responses from different donors are all kept, in commit order"""
    store = InMemoryRequestStore() if backend == "memory" else JsonRequestStore(data_dir=str(tmp_path))
    controller = LifecycleController(store, directory, clock=TickingClock())
    request, _ = controller.create(users["recipient"], request_payload(blood_type="AB+", urgency="routine"))
    donors = [make_user(f"donor-{i:02d}", "O-") for i in range(12)]
    errors = []

    def respond(donor):
        try:
            controller.respond(request.id, donor)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=respond, args=(d,)) for d in donors]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    responses = store.get(request.id).responses
    donor_ids = [r.donor_id for r in responses]
    assert sorted(donor_ids) == sorted(d.id for d in donors)
    assert len(set(donor_ids)) == len(donors)
    dates = [r.response_date for r in responses]
    assert dates == sorted(dates)
