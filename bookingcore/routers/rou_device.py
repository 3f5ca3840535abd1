from fastapi import APIRouter, Depends
from bookingcore.schemas.sch_device import DeviceTokenRequest, DeviceTokenResponse
from bookingcore.services.svc_directory import DirectoryService
from bookingcore.dependencies.dep_services import get_directory
from bookingcore.validators.val_booking import BookingNotFoundError, BookingValidationError

router = APIRouter(
    prefix="/devices",
    tags=["Devices"],
    responses={404: {"description": "Not found"}},
)

def _save(add, owner_id: str, resource: str, token: str) -> DeviceTokenResponse:
    try:
        tokens = add(owner_id, token)
    except ValueError as e:
        raise BookingValidationError(str(e), field="token")
    if tokens is None:
        raise BookingNotFoundError(resource, owner_id)
    return DeviceTokenResponse(message="Token saved.", tokens=tokens)

@router.post('/businesses/{business_id}/tokens', response_model=DeviceTokenResponse)
def save_business_token(
    business_id: str,
    body: DeviceTokenRequest,
    directory: DirectoryService = Depends(get_directory)
):
    """Register a device token for a business; saving the same token twice is a no-op"""
    return _save(directory.add_business_token, business_id, "business", body.token)

@router.delete('/businesses/{business_id}/tokens', response_model=DeviceTokenResponse)
def remove_business_token(
    business_id: str,
    body: DeviceTokenRequest,
    directory: DirectoryService = Depends(get_directory)
):
    business = directory.get_business(business_id)
    if business is None:
        raise BookingNotFoundError("business", business_id)
    directory.remove_business_tokens(business_id, [body.token.strip()])
    return DeviceTokenResponse(
        message="Token removed (if it existed).",
        tokens=directory.get_business(business_id).tokens
    )

@router.post('/clients/{client_id}/tokens', response_model=DeviceTokenResponse)
def save_client_token(
    client_id: str,
    body: DeviceTokenRequest,
    directory: DirectoryService = Depends(get_directory)
):
    """Register a device token for a client"""
    return _save(directory.add_client_token, client_id, "client", body.token)

@router.delete('/clients/{client_id}/tokens', response_model=DeviceTokenResponse)
def remove_client_token(
    client_id: str,
    body: DeviceTokenRequest,
    directory: DirectoryService = Depends(get_directory)
):
    if not directory.client_exists(client_id):
        raise BookingNotFoundError("client", client_id)
    directory.remove_client_tokens(client_id, [body.token.strip()])
    return DeviceTokenResponse(
        message="Token removed (if it existed).",
        tokens=directory.get_client_tokens(client_id)
    )
