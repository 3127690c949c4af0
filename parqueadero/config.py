import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./parqueadero.db")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() == "true"
DB_POOL_TIMEOUT = float(os.getenv("DB_POOL_TIMEOUT", "10"))
# seconds a sqlite writer waits for the write lock before giving up
DB_BUSY_TIMEOUT = float(os.getenv("DB_BUSY_TIMEOUT", "15"))

# Pico y Placa rules are written in local wall-clock time
PARKING_TIMEZONE = os.getenv("PARKING_TIMEZONE", "America/Bogota")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ROOT_PATH = os.getenv("ROOT_PATH", "")

CA_CERT = os.path.join(BASE_DIR, "mqtt", "iot_mqtt_ca.crt")
CLIENT_CERT = os.path.join(BASE_DIR, "mqtt", "iot_mqtt_client.crt")
CLIENT_KEY = os.path.join(BASE_DIR, "mqtt", "iot_mqtt_client.key")

MQTT_HOST = os.getenv("MQTT_HOST")
MQTT_PORT = int(os.getenv("MQTT_PORT", "1883"))
MQTT_TLS_PORT = int(os.getenv("MQTT_TLS_PORT", "8883"))
MQTT_USERNAME = os.getenv("MQTT_USERNAME")
MQTT_PASSWORD = os.getenv("MQTT_PASSWORD")
MQTT_ENTRY_TOPIC = os.getenv("MQTT_ENTRY_TOPIC", "parking/gate/entry")
MQTT_EXIT_TOPIC = os.getenv("MQTT_EXIT_TOPIC", "parking/gate/exit")
MQTT_TLS_ENABLED = os.getenv("MQTT_TLS_ENABLED", "true").lower() == "true"
