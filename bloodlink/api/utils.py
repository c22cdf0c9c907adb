"""
Utility functions and dependency providers for API endpoints
"""
from functools import lru_cache

from fastapi import Depends, HTTPException, Request

from bloodlink.database.schemas import UserIdentity
from bloodlink.database.storage import RequestStore, UserDirectory, create_request_store, create_user_directory
from bloodlink.services.donors import DonorService
from bloodlink.services.lifecycle import LifecycleController
from bloodlink.services.matching import Matcher


@lru_cache
def get_request_store() -> RequestStore:
    return create_request_store()


@lru_cache
def get_user_directory() -> UserDirectory:
    return create_user_directory()


def get_matcher(directory: UserDirectory = Depends(get_user_directory)) -> Matcher:
    return Matcher(directory)


def get_controller(
    store: RequestStore = Depends(get_request_store),
    matcher: Matcher = Depends(get_matcher),
) -> LifecycleController:
    return LifecycleController(store, matcher.directory, matcher)


def get_donor_service(directory: UserDirectory = Depends(get_user_directory)) -> DonorService:
    return DonorService(directory)


def get_current_user(request: Request, directory: UserDirectory = Depends(get_user_directory)) -> UserIdentity:
    """
    Resolve the caller from the X-User-ID header

    Raises HTTPException with 400 status if the header is missing and 401 if
    it does not name an active identity.
    """
    user_id = request.headers.get('X-User-ID')
    if not user_id:
        raise HTTPException(
            status_code=400,
            detail="Missing X-User-ID header. This header is required for this endpoint."
        )
    user = directory.get(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid identity. User not found.")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated.")
    return user


def require_admin(user: UserIdentity = Depends(get_current_user)) -> UserIdentity:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
