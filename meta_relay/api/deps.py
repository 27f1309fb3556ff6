"""
Shared FastAPI dependencies wiring configuration into the services.
"""
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.orm import Session

from meta_relay.core.config import MetaConfig, Settings, get_settings
from meta_relay.core.database import get_db
from meta_relay.services.graph_client import GraphClient
from meta_relay.services.message_store import MessageStore
from meta_relay.services.send_pipeline import SendPipeline


def get_meta_config(settings: Settings = Depends(get_settings)) -> MetaConfig:
    return settings.meta_config()


async def get_graph_client(
    config: MetaConfig = Depends(get_meta_config),
) -> AsyncGenerator[GraphClient, None]:
    """Graph API client scoped to one request."""
    async with GraphClient(config) as client:
        yield client


def get_message_store(
    db: Session = Depends(get_db),
    config: MetaConfig = Depends(get_meta_config),
) -> MessageStore:
    return MessageStore(db, config)


def get_send_pipeline(
    db: Session = Depends(get_db),
    graph: GraphClient = Depends(get_graph_client),
    config: MetaConfig = Depends(get_meta_config),
) -> SendPipeline:
    return SendPipeline(db, graph, config)
