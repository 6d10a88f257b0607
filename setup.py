from setuptools import setup, find_packages

setup(
    name="academia-gamification",
    version="1.0.0",
    description="Scoring engine for the Academia learning platform: XP ledger, streaks, badges and leaderboards",
    packages=find_packages(exclude=["academia.tests", "academia.tests.*"]),
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "alembic>=1.12.0",
        "python-dotenv>=1.0.0",
        "redis>=5.0.1",
        "PyYAML>=6.0",
        "asyncpg>=0.28.0",
        "aiosqlite>=0.19.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.24.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "academia-init-db=academia.scripts.init_db:main",
            "academia-prune-periods=academia.scripts.rollup_periods:main",
        ],
    },
    python_requires=">=3.9",
)
