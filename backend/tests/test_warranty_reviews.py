import pytest

from maestro.services.errors import (
    DuplicateClaimError,
    DuplicateReviewError,
    ForbiddenError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)


def _pending_job(market):
    customer = market.customer()
    pro_user, _ = market.pro()
    request, _ = market.request(customer)
    quote = market.quotes.create_quote(pro_user_id=pro_user, request_id=request.id, amount_cents=3000)
    job, _ = market.jobs.accept_quote(customer_user_id=customer, quote_id=quote.id)
    return customer, pro_user, job.id


def test_review_once_per_done_job(market):
    customer, pro_user, job_id = _pending_job(market)

    with pytest.raises(InvalidTransitionError):
        market.reviews.create_review(customer_user_id=customer, job_id=job_id, rating=5)

    market.jobs.update_status(actor_user_id=pro_user, job_id=job_id, new_status="in_progress")
    market.jobs.update_status(actor_user_id=pro_user, job_id=job_id, new_status="done")

    for rating in (0, 6):
        with pytest.raises(InvalidInputError):
            market.reviews.create_review(customer_user_id=customer, job_id=job_id, rating=rating)
    with pytest.raises(ForbiddenError):
        market.reviews.create_review(customer_user_id=pro_user, job_id=job_id, rating=5)
    with pytest.raises(NotFoundError):
        market.reviews.create_review(customer_user_id=customer, job_id=9999, rating=5)

    review = market.reviews.create_review(customer_user_id=customer, job_id=job_id, rating=5, comment=" Great work ")
    assert review.comment == "Great work"
    with pytest.raises(DuplicateReviewError):
        market.reviews.create_review(customer_user_id=customer, job_id=job_id, rating=1)

    assert [item.id for item in market.reviews.list_pro_reviews(review.target_pro_id)] == [review.id]


def test_claim_requires_done_job_and_owner(market):
    customer, pro_user, job_id = _pending_job(market)
    stranger = market.customer()

    with pytest.raises(InvalidTransitionError):
        market.warranty.create_claim(customer_user_id=customer, job_id=job_id, description="Leak is back")

    market.jobs.update_status(actor_user_id=pro_user, job_id=job_id, new_status="in_progress")
    market.jobs.update_status(actor_user_id=pro_user, job_id=job_id, new_status="done")

    with pytest.raises(InvalidInputError):
        market.warranty.create_claim(customer_user_id=customer, job_id=job_id, description=" ")
    with pytest.raises(ForbiddenError):
        market.warranty.create_claim(customer_user_id=stranger, job_id=job_id, description="Not mine")
    with pytest.raises(NotFoundError):
        market.warranty.create_claim(customer_user_id=customer, job_id=9999, description="Missing")

    claim = market.warranty.create_claim(
        customer_user_id=customer,
        job_id=job_id,
        description="Leak is back",
        photos=["https://cdn.example.com/leak.jpg"],
    )
    assert claim.status == "open"
    assert claim.photos == ["https://cdn.example.com/leak.jpg"]
    with pytest.raises(DuplicateClaimError):
        market.warranty.create_claim(customer_user_id=customer, job_id=job_id, description="Again")


def test_claim_notifies_pro_and_every_admin(market):
    first_admin = market.admin()
    second_admin = market.admin()
    customer, pro_user, job_id = market.done_job()

    market.warranty.create_claim(customer_user_id=customer, job_id=job_id, description="Tiles cracked")

    assert "warranty_claim" in [item.kind for item in market.notifications.list_for_user(pro_user)]
    for admin in (first_admin, second_admin):
        assert [item.kind for item in market.notifications.list_for_user(admin)] == ["warranty_claim"]


def test_resolved_at_is_set_once(market):
    admin = market.admin()
    customer, pro_user, job_id = market.done_job()
    claim = market.warranty.create_claim(customer_user_id=customer, job_id=job_id, description="Still leaking")

    first = market.warranty.update_claim_status(admin_user_id=admin, claim_id=claim.id, new_status="resolved")
    assert first.resolved_at is not None

    second = market.warranty.update_claim_status(
        admin_user_id=admin,
        claim_id=claim.id,
        new_status="resolved",
        admin_notes="Confirmed with customer",
    )
    assert second.resolved_at == first.resolved_at
    assert second.admin_notes == "Confirmed with customer"

    reopened = market.warranty.update_claim_status(admin_user_id=admin, claim_id=claim.id, new_status="reviewing")
    assert reopened.status == "reviewing"
    assert reopened.resolved_at == first.resolved_at
    assert reopened.admin_notes == "Confirmed with customer"

    updates = [item for item in market.notifications.list_for_user(customer) if item.kind == "warranty_claim"]
    assert len(updates) == 3
    pro_updates = [item for item in market.notifications.list_for_user(pro_user) if item.title == "Warranty claim update"]
    assert len(pro_updates) == 2


def test_approved_claim_disputes_the_job(market):
    admin = market.admin()
    customer, pro_user, job_id = market.done_job()
    claim = market.warranty.create_claim(customer_user_id=customer, job_id=job_id, description="Pipe burst again")

    market.warranty.update_claim_status(admin_user_id=admin, claim_id=claim.id, new_status="approved")

    assert market.jobs.get_job(user_id=customer, job_id=job_id).status == "disputed"
    assert market.jobs.get_job(user_id=admin, job_id=job_id).status == "disputed"


def test_claim_status_update_is_admin_only(market):
    admin = market.admin()
    customer, pro_user, job_id = market.done_job()
    claim = market.warranty.create_claim(customer_user_id=customer, job_id=job_id, description="Door sticks")

    with pytest.raises(ForbiddenError):
        market.warranty.update_claim_status(admin_user_id=customer, claim_id=claim.id, new_status="approved")
    with pytest.raises(InvalidInputError):
        market.warranty.update_claim_status(admin_user_id=admin, claim_id=claim.id, new_status="closed")
    with pytest.raises(NotFoundError):
        market.warranty.update_claim_status(admin_user_id=admin, claim_id=9999, new_status="reviewing")

    assert market.warranty.get_claim(user_id=pro_user, claim_id=claim.id).status == "open"
    assert [item.id for item in market.warranty.list_claims(user_id=admin, status="open")] == [claim.id]
    assert market.warranty.list_claims(user_id=market.customer()) == []


def test_second_claim_after_approval_is_still_a_duplicate(market):
    admin = market.admin()
    customer, _, job_id = market.done_job()
    claim = market.warranty.create_claim(customer_user_id=customer, job_id=job_id, description="Grout washed out")
    market.warranty.update_claim_status(admin_user_id=admin, claim_id=claim.id, new_status="approved")
    assert market.jobs.get_job(user_id=customer, job_id=job_id).status == "disputed"

    with pytest.raises(DuplicateClaimError):
        market.warranty.create_claim(customer_user_id=customer, job_id=job_id, description="Filing again")


def test_second_review_after_admin_dispute_is_still_a_duplicate(market):
    admin = market.admin()
    customer, _, job_id = market.done_job()
    market.reviews.create_review(customer_user_id=customer, job_id=job_id, rating=5)
    market.jobs.admin_set_status(admin_user_id=admin, job_id=job_id, new_status="disputed")

    with pytest.raises(DuplicateReviewError):
        market.reviews.create_review(customer_user_id=customer, job_id=job_id, rating=1)


def test_second_review_after_approved_claim_is_still_a_duplicate(market):
    admin = market.admin()
    customer, _, job_id = market.done_job()
    market.reviews.create_review(customer_user_id=customer, job_id=job_id, rating=4)
    claim = market.warranty.create_claim(customer_user_id=customer, job_id=job_id, description="Leak returned")
    market.warranty.update_claim_status(admin_user_id=admin, claim_id=claim.id, new_status="approved")

    with pytest.raises(DuplicateReviewError):
        market.reviews.create_review(customer_user_id=customer, job_id=job_id, rating=2)
