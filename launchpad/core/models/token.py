from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from launchpad.core.models.base import BaseModel, JSONType, isoformat
from launchpad.core.models.enums import TokenStatus


class Token(BaseModel):
    """Launched token, its bonding curve parameters and cached market data"""

    # Core Information
    mint = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(64), nullable=False)
    symbol = Column(String(16), nullable=False)
    description = Column(Text)
    image_url = Column(String(512))
    decimals = Column(Integer, nullable=False, default=9)
    total_supply = Column(BigInteger, nullable=False)
    creator_wallet = Column(String(64), nullable=False, index=True)
    status = Column(Enum(TokenStatus), nullable=False, default=TokenStatus.ACTIVE, index=True)

    # Provider references
    config_key = Column(String(64))
    pool_address = Column(String(64))
    launch_url = Column(String(512))

    # Bonding Curve Parameters (immutable after creation)
    initial_price = Column(Float, nullable=False)
    curve_exponent = Column(Float, nullable=False)
    virtual_sol_reserve = Column(Float, nullable=False)
    virtual_token_reserve = Column(Float, nullable=False)
    graduation_threshold_usd = Column(Float, nullable=False)

    # Market Snapshot
    current_supply = Column(Float, nullable=False, default=0.0)
    current_price_sol = Column(Float, default=0.0)
    market_cap_sol = Column(Float, default=0.0)
    market_cap_usd = Column(Float, default=0.0)
    total_volume_sol = Column(Float, nullable=False, default=0.0)
    total_volume_usd = Column(Float, nullable=False, default=0.0)
    holder_count = Column(Integer, nullable=False, default=0)

    # Platform fee applied at launch
    platform_fee_bps = Column(Integer, nullable=False, default=0)
    platform_fee_discount = Column(Float, nullable=False, default=0.0)

    # Automation Totals
    total_fees_collected = Column(BigInteger, nullable=False, default=0)
    total_burned = Column(BigInteger, nullable=False, default=0)
    total_to_lp = Column(BigInteger, nullable=False, default=0)
    total_dividends_paid = Column(BigInteger, nullable=False, default=0)
    last_automation_run = Column(DateTime(timezone=True))

    # Lifecycle
    launched_at = Column(DateTime(timezone=True))
    graduated_at = Column(DateTime(timezone=True))

    # Relationships
    tax_config = relationship(
        "TokenTaxConfig",
        back_populates="token",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan"
    )
    automation_jobs = relationship(
        "AutomationJob",
        back_populates="token",
        order_by="desc(AutomationJob.created_at)",
        cascade="all, delete-orphan"
    )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'mint': self.mint,
            'name': self.name,
            'symbol': self.symbol,
            'description': self.description,
            'imageUrl': self.image_url,
            'decimals': self.decimals,
            'totalSupply': self.total_supply,
            'creatorWallet': self.creator_wallet,
            'status': str(self.status),
            'configKey': self.config_key,
            'poolAddress': self.pool_address,
            'launchUrl': self.launch_url,
            'curve': {
                'initialPrice': self.initial_price,
                'curveExponent': self.curve_exponent,
                'virtualSolReserve': self.virtual_sol_reserve,
                'virtualTokenReserve': self.virtual_token_reserve,
                'graduationThresholdUsd': self.graduation_threshold_usd,
            },
            'currentSupply': self.current_supply,
            'currentPriceSol': self.current_price_sol,
            'marketCapSol': self.market_cap_sol,
            'marketCapUsd': self.market_cap_usd,
            'totalVolumeSol': self.total_volume_sol,
            'totalVolumeUsd': self.total_volume_usd,
            'holderCount': self.holder_count,
            'platformFeeBps': self.platform_fee_bps,
            'platformFeeDiscount': self.platform_fee_discount,
            'totalFeesCollected': self.total_fees_collected,
            'totalBurned': self.total_burned,
            'totalToLp': self.total_to_lp,
            'totalDividendsPaid': self.total_dividends_paid,
            'lastAutomationRun': isoformat(self.last_automation_run),
            'launchedAt': isoformat(self.launched_at),
            'graduatedAt': isoformat(self.graduated_at),
            'createdAt': isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Token(mint={self.mint}, symbol={self.symbol}, status={self.status})>"


class TokenTaxConfig(BaseModel):
    """Opt-in fee split for a token, stored in normalized form"""

    token_id = Column(Integer, ForeignKey('token.id'), unique=True, nullable=False)
    burn_enabled = Column(Boolean, nullable=False, default=False)
    burn_percent = Column(Float, nullable=False, default=0.0)
    lp_enabled = Column(Boolean, nullable=False, default=False)
    lp_percent = Column(Float, nullable=False, default=0.0)
    dividends_enabled = Column(Boolean, nullable=False, default=False)
    dividends_percent = Column(Float, nullable=False, default=0.0)
    custom_wallets = Column(JSONType, nullable=False, default=list)

    # Relationship
    token = relationship("Token", back_populates="tax_config")

    def __repr__(self):
        return (
            f"<TokenTaxConfig(token_id={self.token_id}, burn={self.burn_percent}, "
            f"lp={self.lp_percent}, dividends={self.dividends_percent})>"
        )
