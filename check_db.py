import os
import psycopg2
from dotenv import load_dotenv

REQUIRED_TABLES = (
    "delivery_fee_settings",
    "delivery_zones",
    "geo_zones",
    "delivery_rules",
    "delivery_discounts",
    "ui_settings",
)

print("--- STARTING DATABASE CHECK ---")

print("1. Loading variables from .env...")
load_dotenv()

db_url = os.getenv('DATABASE_URL')

if not db_url:
    print("❌ ERROR: DATABASE_URL is missing or empty in .env!")
else:
    print("✅ DATABASE_URL found.")
    print("\n2. Connecting to the database...")

    try:
        conn = psycopg2.connect(db_url)
        print("✅ SUCCESS! Connection established.")

        print("\n3. Checking delivery pricing tables...")
        with conn.cursor() as cur:
            cur.execute(
                "SELECT table_name FROM information_schema.tables WHERE table_schema = 'public'"
            )
            existing = {row[0] for row in cur.fetchall()}
        for table in REQUIRED_TABLES:
            print(f"   {'✅' if table in existing else '❌'} {table}")

        conn.close()
        print("   Connection closed.")
    except Exception as e:
        print("❌ FAILURE! Could not check the database.")
        print(f"\n   DETAILED ERROR: {e}")

print("\n--- DATABASE CHECK FINISHED ---")
