"""Main entry point for Schema Porter."""

import logging

import uvicorn

from schema_porter.config import AppSettings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def main():
    """Main function to run the application."""
    settings = AppSettings.from_env()

    print(f"""
    Schema Porter - DM8 schema and data export

    Starting server at: http://{settings.host}:{settings.port}
    Export directory:   {settings.export_dir.resolve()}

    Environment Variables:
    - DATABASE_HOST / DATABASE_PORT / DATABASE_USERNAME / DATABASE_PASSWORD / DATABASE_SCHEMA
      (fallback connection when none is saved)
    - DM8_SQLALCHEMY_DRIVER (optional, defaults to dm+dmPython)
    - CONFIG_DB_PATH (optional, defaults to ~/.schema_porter/config.db)
    """)

    uvicorn.run(
        "schema_porter.api.main:app",
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
