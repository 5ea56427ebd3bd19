#!/usr/bin/env python3
"""
Simple script to verify the realtime WebSocket connection to the backend
"""

import asyncio
import json
import os

import websockets
from dotenv import load_dotenv

load_dotenv()

from config.settings import REALTIME_URL
from services.realtime_service import RealtimeService


async def check_connection():
    """Join the visitors channel and print whatever the server sends back"""
    display_url = REALTIME_URL.split('?', 1)[0]
    try:
        print(f"Attempting to connect to {display_url}...")

        async with websockets.connect(REALTIME_URL) as websocket:
            print("✓ Successfully connected to the realtime server!")

            join = RealtimeService().join_message()
            print("Joining visitors channel...")
            await websocket.send(json.dumps(join))

            try:
                response = await asyncio.wait_for(websocket.recv(), timeout=5.0)
                data = json.loads(response)
                print(f"✓ Received response: {data}")
                if (data.get('payload') or {}).get('status') == 'ok':
                    print("✓ Channel joined")
                else:
                    print("✗ Channel join rejected")
            except asyncio.TimeoutError:
                print("⚠ No response received within 5 seconds")

    except websockets.exceptions.InvalidURI:
        print(f"✗ Invalid WebSocket URI: {display_url}")
        print("Make sure SUPABASE_URL is in the format: https://<project>.supabase.co")
    except OSError as e:
        print(f"✗ Connection refused to {display_url}: {e}")
        print("Make sure the backend is running and accessible")
    except Exception as e:
        print(f"✗ Connection failed: {e}")


if __name__ == "__main__":
    print("Realtime Connection Check")
    print("=" * 40)
    print(f"Server: {os.environ.get('SUPABASE_URL', 'http://localhost:54321')}")
    print()

    asyncio.run(check_connection())
