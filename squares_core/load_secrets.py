import os
from dotenv import load_dotenv

load_dotenv()

user = os.getenv("DB_USER")
password = os.getenv("DB_PASSWORD")
host = os.getenv("DB_HOST")
port = os.getenv("DB_PORT")
db_name = os.getenv("DB_NAME")
pepper_data = os.getenv("PEPPER_DATA", "")

database_url = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db_name}",
)
redis_url = os.getenv("REDIS_URL")

score_provider_base_url = os.getenv(
    "SCORE_PROVIDER_BASE_URL",
    "https://site.api.espn.com/apis/site/v2/sports/football",
)
provider_timeout_seconds = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))

score_sync_interval_minutes = int(os.getenv("SCORE_SYNC_INTERVAL_MINUTES", "5"))
auto_lock_interval_minutes = int(os.getenv("AUTO_LOCK_INTERVAL_MINUTES", "1"))
fetch_horizon_hours = float(os.getenv("FETCH_HORIZON_HOURS", "2"))
auto_lock_buffer_seconds = int(os.getenv("AUTO_LOCK_BUFFER_SECONDS", "30"))
transaction_max_retries = int(os.getenv("TRANSACTION_MAX_RETRIES", "5"))

log_level = os.getenv("LOG_LEVEL", "INFO")

if __name__ == "__main__":
    print(user, host, port, db_name, redis_url, score_provider_base_url)
