"""
WebSocket service for the backend's realtime change feed.

Runs one connection in a dedicated thread and fans visitor-table changes out
to every subscriber.
"""
import asyncio
import json
import logging
import threading
import time
import traceback

import websockets

from config.settings import REALTIME_HEARTBEAT_INTERVAL, REALTIME_RECONNECT_DELAY, REALTIME_URL
from models.visitor_event import VisitorEvent
from services.supabase_service import Subscription

logger = logging.getLogger(__name__)

VISITORS_TOPIC = 'realtime:visitor-notifications'


class RealtimeService:
  """Thread-safe realtime client for Flask"""

  def __init__(self, url=REALTIME_URL, heartbeat_interval=REALTIME_HEARTBEAT_INTERVAL,
               reconnect_delay=REALTIME_RECONNECT_DELAY, access_token=None,
               schema='public', table='visitors'):
    logger.info("=== INITIALIZING REALTIME SERVICE ===")
    self.url = url
    self.heartbeat_interval = heartbeat_interval
    self.reconnect_delay = reconnect_delay
    self.access_token = access_token
    self.schema = schema
    self.table = table
    self.websocket = None
    self.connected = False
    self.joined = False
    self._subscribers = []
    self._lock = threading.Lock()
    self._ref = 0
    self._last_heartbeat = 0.0
    self._thread = None
    self._running = False
    self._main_loop = None
    self._service_ready = threading.Event()

  def start(self):
    """Start the realtime connection in a dedicated thread"""
    logger.info("=== STARTING REALTIME SERVICE ===")
    if self._thread and self._thread.is_alive():
      logger.info("Realtime service already running")
      return

    self._running = True
    self._thread = threading.Thread(target=self._worker, daemon=True, name="Realtime-Worker")
    self._thread.start()

    if self._service_ready.wait(timeout=10):
      logger.info("✓ Realtime service started")
    else:
      logger.error("✗ Realtime service failed to start within 10 seconds")

  def stop(self):
    logger.info("=== STOPPING REALTIME SERVICE ===")
    self._running = False
    if self._thread:
      self._thread.join(timeout=5)

  def get_state(self):
    with self._lock:
      return {
        'running': self._running,
        'connected': self.connected,
        'joined': self.joined,
        'subscribers': len(self._subscribers),
        'url': self.url.split('?', 1)[0]
      }

  # -- subscribers ---------------------------------------------------------

  def subscribe_to_visitors(self, callback):
    """callback(VisitorEvent) for every insert/update on the visitors table"""
    with self._lock:
      self._subscribers.append(callback)
    logger.debug(f"Visitor subscriber added ({len(self._subscribers)} total)")

    def _remove(_subscription):
      with self._lock:
        if callback in self._subscribers:
          self._subscribers.remove(callback)
      logger.debug("Visitor subscriber removed")

    return Subscription(_remove)

  def dispatch(self, event):
    """Deliver one event to every current subscriber"""
    with self._lock:
      subscribers = list(self._subscribers)
    for callback in subscribers:
      try:
        callback(event)
      except Exception as e:
        logger.error(f"Visitor subscriber error: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")

  # -- protocol ------------------------------------------------------------

  def _next_ref(self):
    self._ref += 1
    return str(self._ref)

  def join_message(self):
    payload = {
      'config': {
        'broadcast': {'self': False},
        'presence': {'key': ''},
        'postgres_changes': [
          {'event': '*', 'schema': self.schema, 'table': self.table}
        ]
      }
    }
    if self.access_token:
      payload['access_token'] = self.access_token
    return {
      'topic': VISITORS_TOPIC,
      'event': 'phx_join',
      'payload': payload,
      'ref': self._next_ref()
    }

  def heartbeat_message(self):
    return {
      'topic': 'phoenix',
      'event': 'heartbeat',
      'payload': {},
      'ref': self._next_ref()
    }

  def handle_message(self, message):
    """Parse one frame from the server; returns the VisitorEvent it carried, if any"""
    try:
      data = json.loads(message)
    except (TypeError, ValueError) as e:
      logger.error(f"Failed to parse message: {e}")
      return None

    event = data.get('event')
    payload = data.get('payload') or {}

    if event == 'phx_reply' and data.get('topic') == VISITORS_TOPIC:
      status = payload.get('status')
      if status == 'ok':
        if not self.joined:
          logger.info(f"✓ Joined {VISITORS_TOPIC}")
        self.joined = True
      else:
        logger.error(f"✗ Channel join failed: {payload.get('response')}")
      return None

    if event == 'postgres_changes':
      change = payload.get('data') or {}
      if change.get('table') not in (None, self.table):
        return None
      visitor_event = VisitorEvent.from_change(change)
      if visitor_event is None:
        logger.debug(f"Ignoring change of type {change.get('type')}")
        return None
      logger.debug(f"Received {visitor_event}")
      self.dispatch(visitor_event)
      return visitor_event

    if event in ('phx_error', 'phx_close'):
      logger.warning(f"Channel {data.get('topic')} closed: {event}")
      self.joined = False
      return None

    if event == 'system' and payload.get('status') == 'error':
      logger.error(f"Realtime system error: {payload.get('message')}")
    return None

  # -- worker --------------------------------------------------------------

  def _worker(self):
    logger.info("=== REALTIME WORKER THREAD STARTED ===")
    try:
      self._main_loop = asyncio.new_event_loop()
      asyncio.set_event_loop(self._main_loop)
      self._service_ready.set()
      self._main_loop.run_until_complete(self._main())
    except Exception as e:
      logger.error(f"Realtime worker error: {e}")
      logger.error(f"Traceback: {traceback.format_exc()}")
    finally:
      logger.info("Realtime worker thread ending")
      if self._main_loop:
        self._main_loop.close()

  async def _main(self):
    while self._running:
      try:
        if not self.connected:
          await self._connect()

        if self.connected:
          await self._maybe_heartbeat()
          await self._process_messages()

        await asyncio.sleep(0.1)

      except Exception as e:
        logger.error(f"Realtime main loop error: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        await self._disconnect()
        logger.info(f"Waiting {self.reconnect_delay} seconds before reconnecting...")
        await asyncio.sleep(self.reconnect_delay)

    await self._disconnect()

  async def _connect(self):
    logger.info(f"=== CONNECTING TO {self.url.split('?', 1)[0]} ===")
    self.websocket = await websockets.connect(
      self.url,
      ping_interval=None,
      close_timeout=10
    )
    self.connected = True
    self.joined = False
    logger.info("✓ Realtime connected")
    await self.websocket.send(json.dumps(self.join_message()))
    self._last_heartbeat = time.monotonic()

  async def _disconnect(self):
    self.connected = False
    self.joined = False
    if self.websocket is not None:
      try:
        await self.websocket.close()
      except Exception as e:
        logger.debug(f"Error closing websocket: {e}")
      self.websocket = None

  async def _maybe_heartbeat(self):
    if time.monotonic() - self._last_heartbeat >= self.heartbeat_interval:
      await self.websocket.send(json.dumps(self.heartbeat_message()))
      self._last_heartbeat = time.monotonic()

  async def _process_messages(self):
    try:
      message = await asyncio.wait_for(self.websocket.recv(), timeout=0.1)
    except asyncio.TimeoutError:
      return
    except websockets.exceptions.ConnectionClosed:
      logger.warning("Realtime connection closed")
      self.connected = False
      self.joined = False
      self.websocket = None
      return
    self.handle_message(message)
