import os
from dataclasses import dataclass
from typing import Dict, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

@dataclass
class CurveDefaults:
    initial_price: float = 0.00001
    curve_exponent: float = 2.0
    virtual_sol_reserve: float = 30.0
    virtual_token_reserve: float = 1_000_000_000.0
    graduation_threshold_usd: float = 69_000.0

    def to_dict(self) -> Dict:
        return {
            "initial_price": self.initial_price,
            "curve_exponent": self.curve_exponent,
            "virtual_sol_reserve": self.virtual_sol_reserve,
            "virtual_token_reserve": self.virtual_token_reserve,
            "graduation_threshold_usd": self.graduation_threshold_usd,
        }

class Settings:
    def __init__(self):
        self._validate_required_env_vars()
        self._load_settings()

    def _validate_required_env_vars(self):
        """Validate that all required environment variables are present"""
        required_vars = [
            'DATABASE_URL',
        ]

        missing_vars = [var for var in required_vars if not os.getenv(var)]
        if missing_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(missing_vars)}")

    def _load_settings(self):
        """Load and process all settings from environment variables"""
        # Database Configuration
        self.database_url: str = os.getenv('DATABASE_URL', '')

        # Launch Provider Configuration
        self.launch_provider_url: str = os.getenv('LAUNCH_PROVIDER_URL', 'https://api.bags.fm/v1')
        self.launch_provider_api_key: Optional[str] = os.getenv('LAUNCH_PROVIDER_API_KEY')
        self.provider_config = {
            "timeout": float(os.getenv('PROVIDER_TIMEOUT', '30')),
            "max_retries": int(os.getenv('PROVIDER_MAX_RETRIES', '3')),
            "retry_delay": float(os.getenv('PROVIDER_RETRY_DELAY', '1.0')),
        }

        # Admin
        self.admin_api_key: Optional[str] = os.getenv('ADMIN_API_KEY')

        # Fees (basis points)
        self.platform_fee_bps: int = int(os.getenv('PLATFORM_FEE_BPS', '500'))
        self.trading_fee_bps: int = int(os.getenv('TRADING_FEE_BPS', '100'))

        # Constants
        self.lamports_per_sol: int = int(os.getenv('LAMPORTS_PER_SOL', '1000000000'))
        self.default_token_supply: int = int(os.getenv('DEFAULT_TOKEN_SUPPLY', '1000000000'))
        self.default_token_decimals: int = int(os.getenv('DEFAULT_TOKEN_DECIMALS', '9'))

        # Bonding Curve Defaults
        self.curve_defaults = CurveDefaults(
            initial_price=float(os.getenv('DEFAULT_INITIAL_PRICE', '0.00001')),
            curve_exponent=float(os.getenv('DEFAULT_CURVE_EXPONENT', '2.0')),
            virtual_sol_reserve=float(os.getenv('DEFAULT_VIRTUAL_SOL_RESERVE', '30')),
            virtual_token_reserve=float(os.getenv('DEFAULT_VIRTUAL_TOKEN_RESERVE', '1000000000')),
            graduation_threshold_usd=float(os.getenv('DEFAULT_GRADUATION_THRESHOLD_USD', '69000')),
        )

        # Automation Configuration
        self.automation_interval: int = int(os.getenv('AUTOMATION_INTERVAL', '3600'))
        self.graduation_interval: int = int(os.getenv('GRADUATION_INTERVAL', '900'))
        self.cleanup_interval: int = int(os.getenv('CLEANUP_INTERVAL', '86400'))
        self.job_retention_days: int = int(os.getenv('JOB_RETENTION_DAYS', '30'))
        self.enable_scheduler: bool = str(os.getenv('ENABLE_SCHEDULER', 'true')).lower() == 'true'

        # Resource Limits
        self.max_workers: int = int(os.getenv('MAX_WORKERS', '10'))

        # Staking Configuration
        self.staking_reward_rate: float = float(os.getenv('STAKING_REWARD_RATE', '1000'))
        self.staking_rewards_pool: int = int(os.getenv('STAKING_REWARDS_POOL', '10000000000000'))

        # Logging Configuration
        self.log_level: str = os.getenv('LOG_LEVEL', 'INFO')
        self.log_format: str = os.getenv('LOG_FORMAT', '%(asctime)s - %(levelname)s - [%(name)s] %(message)s')
        self.log_file: Optional[str] = os.getenv('LOG_FILE')

        # API Server
        self.api_host: str = os.getenv('API_HOST', '0.0.0.0')
        self.api_port: int = int(os.getenv('API_PORT', '3001'))
        self.cors_origins = [o.strip() for o in os.getenv('CORS_ORIGINS', '*').split(',') if o.strip()]

    def __getitem__(self, key: str) -> any:
        """Allow dictionary-style access"""
        return getattr(self, key.lower())
