import os, time
from urllib.parse import urlparse

import psycopg2

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise SystemExit("DATABASE_URL is not set")

# SQLAlchemy URL may start with postgresql+psycopg2:// (or Render's postgres://)
url = DATABASE_URL.replace("postgresql+psycopg2://", "postgresql://").replace("postgres://", "postgresql://")
p = urlparse(url)

if p.scheme != "postgresql":
    print(f"[wait_for_db] {p.scheme} database, nothing to wait for.")
else:
    host = p.hostname or "db"
    port = p.port or 5432
    user = p.username or "pickups"
    password = p.password or "pickups"
    dbname = (p.path or "/pickups").lstrip("/") or "pickups"

    timeout_s = int(os.getenv("DB_WAIT_TIMEOUT", "60"))
    start = time.time()

    print(f"[wait_for_db] Waiting for Postgres at {host}:{port} db={dbname} user={user} (timeout={timeout_s}s)")
    while True:
        try:
            conn = psycopg2.connect(host=host, port=port, user=user, password=password, dbname=dbname)
            conn.close()
            print("[wait_for_db] Postgres is ready.")
            break
        except psycopg2.OperationalError as e:
            if time.time() - start > timeout_s:
                print(f"[wait_for_db] Timed out waiting for DB. Last error: {e}")
                raise
            time.sleep(1)
