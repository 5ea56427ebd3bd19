"""
Application configuration settings.
"""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Flask configuration
SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

# Supabase project (auth, tables, realtime)
SUPABASE_URL = os.environ.get('SUPABASE_URL', 'http://localhost:54321').rstrip('/')
SUPABASE_ANON_KEY = os.environ.get('SUPABASE_ANON_KEY', '')


def build_realtime_url(base_url, api_key):
  """Derive the realtime websocket endpoint from the project URL"""
  if base_url.startswith('https://'):
    ws_base = 'wss://' + base_url[len('https://'):]
  elif base_url.startswith('http://'):
    ws_base = 'ws://' + base_url[len('http://'):]
  else:
    ws_base = base_url
  return f"{ws_base}/realtime/v1/websocket?apikey={api_key}&vsn=1.0.0"


REALTIME_URL = os.environ.get('SUPABASE_REALTIME_URL') or build_realtime_url(SUPABASE_URL, SUPABASE_ANON_KEY)

# Backend timeouts (seconds)
PROFILE_FETCH_TIMEOUT = float(os.environ.get('PROFILE_FETCH_TIMEOUT', 10))
HTTP_TIMEOUT = float(os.environ.get('HTTP_TIMEOUT', 15))

# Refresh the access token this many seconds before it expires
TOKEN_REFRESH_MARGIN = float(os.environ.get('TOKEN_REFRESH_MARGIN', 60))

# Browser contexts unused for this long are closed (seconds)
SESSION_IDLE_TIMEOUT = float(os.environ.get('SESSION_IDLE_TIMEOUT', 8 * 60 * 60))

# Realtime connection
REALTIME_ENABLED = os.environ.get('REALTIME_ENABLED', 'True').lower() == 'true'
REALTIME_HEARTBEAT_INTERVAL = float(os.environ.get('REALTIME_HEARTBEAT_INTERVAL', 30))
REALTIME_RECONNECT_DELAY = float(os.environ.get('REALTIME_RECONNECT_DELAY', 5))
# Token the shared realtime connection joins with. Leave unset to join with the
# anon key; row-level security on visitors then hides changes from the feed.
REALTIME_ACCESS_TOKEN = os.environ.get('SUPABASE_REALTIME_TOKEN') or None

# Most recent notifications kept per browser session
NOTIFICATION_CAPACITY = int(os.environ.get('NOTIFICATION_CAPACITY', 100))

# Reception profiles synthesized without a stored row get these floors
DEFAULT_RECEPTION_FLOORS = [0, 1]

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG').upper()

# Flask app configuration
DEBUG = os.environ.get('FLASK_DEBUG', 'True').lower() == 'true'
HOST = os.environ.get('FLASK_HOST', '0.0.0.0')
PORT = int(os.environ.get('FLASK_PORT', 5000))
