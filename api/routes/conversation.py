"""
Conversation endpoints.

Thin HTTP layer over the ConversationManager: message processing, language
detection and preferences, clarification management and statistics.
"""

from fastapi import APIRouter, HTTPException, Depends
import logging

from config import settings
from core.conversation import ConversationManager, StoreError, ValidationError
from models.schemas import (
    ProcessMessageRequest,
    ProcessMessageResponse,
    DetectLanguageRequest,
    DetectLanguageResponse,
    SupportedLanguagesResponse,
    PreferredLanguageRequest,
    PreferredLanguageResponse,
    ConversationStatsResponse,
    ClarificationResponse,
    CancelClarificationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Shared manager for the application process
conversation_manager = ConversationManager(settings.conversation_config())


def get_conversation_manager() -> ConversationManager:
    return conversation_manager


@router.post("/message", response_model=ProcessMessageResponse)
async def process_message(request: ProcessMessageRequest,
                          manager: ConversationManager = Depends(get_conversation_manager)):
    """
    Process one user message.

    Always answers 200; collaborator failures are reported through
    success=False and metadata.error.
    """
    logger.info(
        "Message received",
        extra={
            "conversation_id": request.conversation_id,
            "user_id": request.user_id,
            "message_length": len(request.message),
        }
    )

    result = await manager.process_message(
        request.message,
        conversation_id=request.conversation_id,
        user_id=request.user_id,
    )

    if not result.success:
        logger.warning(
            f"Message processing failed: {result.error}",
            extra={"conversation_id": result.conversation_id}
        )

    return ProcessMessageResponse(**result.to_dict())


@router.post("/detect-language", response_model=DetectLanguageResponse)
async def detect_language(request: DetectLanguageRequest,
                          manager: ConversationManager = Depends(get_conversation_manager)):
    detection = manager.detect_language(request.text)
    return DetectLanguageResponse(**detection.to_dict())


@router.get("/languages", response_model=SupportedLanguagesResponse)
async def get_supported_languages(manager: ConversationManager = Depends(get_conversation_manager)):
    return SupportedLanguagesResponse(languages=manager.get_supported_languages())


@router.get("/stats", response_model=ConversationStatsResponse)
async def get_conversation_stats(manager: ConversationManager = Depends(get_conversation_manager)):
    return ConversationStatsResponse(**manager.get_conversation_stats())


@router.get("/{conversation_id}/language", response_model=PreferredLanguageResponse)
async def get_preferred_language(conversation_id: str,
                                 manager: ConversationManager = Depends(get_conversation_manager)):
    try:
        preferred_language = await manager.get_preferred_language(conversation_id)
    except StoreError as e:
        logger.error(f"Error reading preferred language: {str(e)}", exc_info=True)
        raise HTTPException(status_code=503, detail=str(e))

    return PreferredLanguageResponse(conversation_id=conversation_id, preferred_language=preferred_language)


@router.put("/{conversation_id}/language", response_model=PreferredLanguageResponse)
async def set_preferred_language(conversation_id: str, request: PreferredLanguageRequest,
                                 manager: ConversationManager = Depends(get_conversation_manager)):
    try:
        await manager.set_preferred_language(conversation_id, request.language)
    except ValidationError as e:
        logger.warning(f"Validation error setting language: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        logger.error(f"Error setting preferred language: {str(e)}", exc_info=True)
        raise HTTPException(status_code=503, detail=str(e))

    return PreferredLanguageResponse(
        conversation_id=conversation_id,
        preferred_language=await manager.get_preferred_language(conversation_id),
    )


@router.get("/{conversation_id}/clarification", response_model=ClarificationResponse)
async def get_pending_clarification(conversation_id: str,
                                    manager: ConversationManager = Depends(get_conversation_manager)):
    pending = manager.get_pending_clarification(conversation_id)
    if pending is None:
        raise HTTPException(status_code=404, detail="No pending clarification")
    return ClarificationResponse(**pending.to_dict())


@router.delete("/{conversation_id}/clarification", response_model=CancelClarificationResponse)
async def cancel_clarification(conversation_id: str,
                               manager: ConversationManager = Depends(get_conversation_manager)):
    return CancelClarificationResponse(
        conversation_id=conversation_id,
        canceled=manager.cancel_clarification_request(conversation_id),
    )


@router.delete("/{conversation_id}")
async def clear_conversation(conversation_id: str,
                             manager: ConversationManager = Depends(get_conversation_manager)):
    """Forget everything stored for a conversation"""
    try:
        await manager.clear_conversation_context(conversation_id)
    except StoreError as e:
        logger.error(f"Error clearing conversation {conversation_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=503, detail=str(e))
    return {"conversation_id": conversation_id, "cleared": True}
