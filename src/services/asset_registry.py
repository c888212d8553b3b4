"""Per-asset configuration table.

The registry is built once at import time and never mutated. Its order is
the order in which assets are served.
"""

from collections.abc import Iterator, Mapping
from types import MappingProxyType

from src.models.asset_config import (
    AssetConfig,
    ChangeBasis,
    FallbackProfile,
    UnitScale,
)
from src.models.market_data import WeatherStatus
from src.services.classification import (
    COMMODITY_RULE,
    CRYPTO_RULE,
    INDEX_RULE,
    RATE_RULE,
    FearGreedRule,
    InflationRule,
    PriceBandRule,
    SentimentLevelRule,
    YieldSpreadRule,
)
from src.services.formatting import signed_with_unit, with_unit

# Grams per troy ounce and per don (the Korean gold weight unit)
TROY_OUNCE_GRAMS = 31.1035
DON_GRAMS = 3.75
TROY_OZ_TO_DON = DON_GRAMS / TROY_OUNCE_GRAMS

# Real-estate proxy prices are kept in units of 100M KRW (eok); change points
# are shown in 10k KRW (man-won).
EOK_TO_MAN = 10_000

FX_SOURCE = "ExchangeRate-API"
QUOTE_SOURCE = "Yahoo Finance"
CRYPTO_SOURCE = "CoinGecko"
FUEL_SOURCE = "오피넷"
REAL_ESTATE_SOURCE = "한국부동산원"
ECOS_SOURCE = "한국은행 ECOS"
FEAR_GREED_SOURCE = "Alternative.me"

DAY_BASIS = "전일 대비"
DAY_24H_BASIS = "24시간 대비"
PERIOD_BASIS = "직전 발표 대비"


def _messages(sunny: str, cloudy: str, rainy: str, thunder: str) -> Mapping[WeatherStatus, str]:
    return MappingProxyType(
        {
            WeatherStatus.SUNNY: sunny,
            WeatherStatus.CLOUDY: cloudy,
            WeatherStatus.RAINY: rainy,
            WeatherStatus.THUNDER: thunder,
        }
    )


_won_2 = with_unit(2, "원")
_won_0 = with_unit(0, "원")
_index_price = with_unit(2, "pt")
_percent_price = with_unit(2, "%")
_level_price = with_unit(1)

_currency_points = signed_with_unit(1, "원")
_per_100_points = signed_with_unit(2, "원")
_index_points = signed_with_unit(2, "pt")
_level_points = signed_with_unit(1, "pt")
_rate_points = signed_with_unit(2, "%p")
_won_points = signed_with_unit(0, "원")

_FX_BUY = 1.0175
_FX_SELL = 0.9825

_CURRENCY_MESSAGES = {
    "usdkrw": _messages(
        "해외직구 타이밍! 달러가 저렴해요.",
        "환율이 잠잠해요. 큰 변화가 없네요.",
        "지금 여행가면 손해예요! 환전은 미루세요.",
        "환율이 요동치고 있어요! 조심하세요.",
    ),
    "jpykrw": _messages(
        "엔화가 저렴해요! 일본 여행 준비해볼까요?",
        "엔화가 조용해요. 평소와 비슷해요.",
        "엔화가 비싸졌어요. 환전은 조금 기다려봐요.",
        "엔화가 크게 흔들리고 있어요!",
    ),
    "cnykrw": _messages(
        "위안화가 저렴해요. 중국 직구에 좋아요.",
        "위안화가 안정적이에요.",
        "위안화가 비싸졌어요. 환전은 천천히!",
        "위안화가 요동치고 있어요!",
    ),
    "eurkrw": _messages(
        "유로가 저렴해요! 유럽 여행 찬스!",
        "유로가 잠잠해요. 큰 변화가 없네요.",
        "유로가 비싸졌어요. 환전은 미루세요.",
        "유로가 크게 흔들리고 있어요!",
    ),
}

_INDEX_MESSAGES = _messages(
    "시장이 뜨거워요! 빨간불이 켜졌어요.",
    "시장이 조용하네요. 관망하는 분위기예요.",
    "시장이 차갑게 식었어요. 바겐세일 중일지도?",
    "시장이 요동치고 있어요! 롤러코스터 주의보!",
)

_RATE_MESSAGES = _messages(
    "은행 이자가 쏠쏠해요. 적금 들기 좋은 날!",
    "금리가 잠잠하거나 내려갔어요. 대출받긴 좋겠네요.",
    "금리가 많이 내려갔어요.",
    "금리가 급변하고 있어요!",
)


def _build_registry() -> tuple[AssetConfig, ...]:
    return (
        # Currencies
        AssetConfig(
            asset_id="usdkrw",
            name="미국 달러",
            category="currency",
            classify=PriceBandRule(low=1350, high=1400),
            format_price=_won_2,
            format_change_points=_currency_points,
            format_buy_price=_won_2,
            format_sell_price=_won_2,
            buy_spread=_FX_BUY,
            sell_spread=_FX_SELL,
            messages=_CURRENCY_MESSAGES["usdkrw"],
            advice="환율이 높을 땐 수출 기업 주식이 좋을 수 있어요! 반대로 환율이 낮을 땐 해외여행이나 직구가 유리해요.",
            source_label=FX_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=1380, volatility=50, change_span=1.0),
        ),
        AssetConfig(
            asset_id="jpykrw",
            name="일본 엔 (100엔)",
            category="currency",
            classify=PriceBandRule(low=880, high=950),
            format_price=_won_2,
            format_change_points=_per_100_points,
            format_buy_price=_won_2,
            format_sell_price=_won_2,
            buy_spread=_FX_BUY,
            sell_spread=_FX_SELL,
            messages=_CURRENCY_MESSAGES["jpykrw"],
            advice="엔화가 쌀 때 조금씩 나눠서 환전해두면 일본 여행 경비를 아낄 수 있어요.",
            source_label=FX_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=9.2, volatility=0.3, change_span=1.0),
            unit_scale=UnitScale.PER_100,
        ),
        AssetConfig(
            asset_id="cnykrw",
            name="중국 위안",
            category="currency",
            classify=PriceBandRule(low=185, high=195),
            format_price=_won_2,
            format_change_points=_currency_points,
            format_buy_price=_won_2,
            format_sell_price=_won_2,
            buy_spread=_FX_BUY,
            sell_spread=_FX_SELL,
            messages=_CURRENCY_MESSAGES["cnykrw"],
            advice="위안화는 중국 경기와 함께 움직여요. 중국 관련 소비나 투자 전에 한 번 확인해보세요.",
            source_label=FX_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=190, volatility=5, change_span=1.0),
        ),
        AssetConfig(
            asset_id="eurkrw",
            name="유로",
            category="currency",
            classify=PriceBandRule(low=1500, high=1600),
            format_price=_won_2,
            format_change_points=_currency_points,
            format_buy_price=_won_2,
            format_sell_price=_won_2,
            buy_spread=_FX_BUY,
            sell_spread=_FX_SELL,
            messages=_CURRENCY_MESSAGES["eurkrw"],
            advice="유럽 여행 계획이 있다면 유로가 쌀 때 미리 나눠서 환전해두세요.",
            source_label=FX_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=1550, volatility=40, change_span=1.0),
        ),
        # Indices
        AssetConfig(
            asset_id="kospi",
            name="코스피",
            category="index",
            classify=INDEX_RULE,
            format_price=_index_price,
            format_change_points=_index_points,
            messages=_INDEX_MESSAGES,
            advice="주식 시장이 하락할 때는 좋은 기업을 싸게 살 기회일 수 있어요. 하지만 무리한 투자는 금물!",
            source_label=QUOTE_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=2500, volatility=100),
        ),
        AssetConfig(
            asset_id="kosdaq",
            name="코스닥",
            category="index",
            classify=INDEX_RULE,
            format_price=_index_price,
            format_change_points=_index_points,
            messages=_INDEX_MESSAGES,
            advice="코스닥은 성장주가 많아 코스피보다 변동이 커요. 분산 투자를 잊지 마세요.",
            source_label=QUOTE_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=750, volatility=30),
        ),
        AssetConfig(
            asset_id="sp500",
            name="S&P 500",
            category="index",
            classify=INDEX_RULE,
            format_price=_index_price,
            format_change_points=_index_points,
            messages=_INDEX_MESSAGES,
            advice="미국 대표 500개 기업의 성적표예요. 장기 적립식 투자의 기준으로 많이 쓰여요.",
            source_label=QUOTE_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=5800, volatility=150),
        ),
        AssetConfig(
            asset_id="nasdaq",
            name="나스닥",
            category="index",
            classify=INDEX_RULE,
            format_price=_index_price,
            format_change_points=_index_points,
            messages=_INDEX_MESSAGES,
            advice="기술주 중심 지수라 금리 변화에 민감해요. 금리 카드도 함께 확인해보세요.",
            source_label=QUOTE_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=18500, volatility=500),
        ),
        AssetConfig(
            asset_id="dowjones",
            name="다우존스",
            category="index",
            classify=INDEX_RULE,
            format_price=_index_price,
            format_change_points=_index_points,
            messages=_INDEX_MESSAGES,
            advice="전통 우량주 30개로 구성된 지수예요. 경기 흐름을 가늠하는 데 도움이 돼요.",
            source_label=QUOTE_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=42000, volatility=800),
        ),
        AssetConfig(
            asset_id="feargreed",
            name="공포 탐욕 지수",
            category="index",
            classify=FearGreedRule(),
            format_price=with_unit(0),
            format_change_points=signed_with_unit(0, "pt"),
            messages=_messages(
                "투자자들이 욕심을 내고 있어요. 분위기가 좋아요!",
                "공포도 탐욕도 아닌 중립이에요.",
                "투자자들이 겁을 먹었어요.",
                "극도의 공포! 시장이 얼어붙었어요.",
            ),
            advice="남들이 두려워할 때 욕심을 내라는 말이 있어요. 지수가 극단에 있을 땐 한 발 물러서서 생각해보세요.",
            source_label=FEAR_GREED_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=50, volatility=20, change_span=10),
            change_basis=ChangeBasis.POINTS,
        ),
        AssetConfig(
            asset_id="ccsi",
            name="소비자심리지수",
            category="index",
            classify=SentimentLevelRule(),
            format_price=_level_price,
            format_change_points=_level_points,
            messages=_messages(
                "소비자들이 경기를 밝게 보고 있어요!",
                "소비 심리가 평소 수준이에요.",
                "지갑이 닫히고 있어요. 소비 심리가 움츠러들었어요.",
                "소비 심리가 얼어붙었어요!",
            ),
            advice="100보다 높으면 경기를 좋게 보는 사람이 더 많다는 뜻이에요. 소비 관련 주식의 흐름과 함께 보면 좋아요.",
            source_label=ECOS_SOURCE,
            basis_label=PERIOD_BASIS,
            fallback=FallbackProfile(base=98, volatility=5, change_span=4),
            change_basis=ChangeBasis.POINTS,
        ),
        # Commodities
        AssetConfig(
            asset_id="gold",
            name="금 (1돈)",
            category="commodity",
            classify=COMMODITY_RULE,
            format_price=_won_0,
            format_change_points=_won_points,
            format_buy_price=_won_0,
            format_sell_price=_won_0,
            buy_spread=1.03,
            sell_spread=0.97,
            messages=_messages(
                "불안할 땐 역시 금이죠! 방어력이 올라갔어요.",
                "금값이 안정적이에요. 조용한 하루네요.",
                "세상이 평화로운가 봐요. 금 인기가 식었어요.",
                "금값이 크게 움직이고 있어요!",
            ),
            advice="금은 경제가 불안할 때 가치가 오르는 안전자산이에요. 포트폴리오의 10~15%를 금으로 가져가면 안정적이에요.",
            source_label=QUOTE_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=2650, volatility=80),
            unit_scale=UnitScale.TROY_OZ_TO_DON,
        ),
        AssetConfig(
            asset_id="silver",
            name="은 (1돈)",
            category="commodity",
            classify=COMMODITY_RULE,
            format_price=_won_0,
            format_change_points=_won_points,
            format_buy_price=_won_0,
            format_sell_price=_won_0,
            buy_spread=1.05,
            sell_spread=0.95,
            messages=_messages(
                "은값이 반짝반짝 빛나고 있어요!",
                "은값이 잠잠해요.",
                "은값이 주춤하고 있어요.",
                "은값이 크게 흔들리고 있어요!",
            ),
            advice="은은 산업 수요가 많아 금보다 경기에 민감해요. 금과 함께 조금씩 나눠 담아보세요.",
            source_label=QUOTE_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=31, volatility=2),
            unit_scale=UnitScale.TROY_OZ_TO_DON,
        ),
        AssetConfig(
            asset_id="gasoline",
            name="휘발유",
            category="commodity",
            classify=PriceBandRule(low=1600, high=1750),
            format_price=with_unit(0, "원/L"),
            format_change_points=_won_points,
            messages=_messages(
                "기름값이 착해요! 주유하기 좋은 날이에요.",
                "기름값이 평소 수준이에요.",
                "기름값이 비싸요. 가득 주유는 잠시 미뤄볼까요?",
                "기름값이 요동치고 있어요!",
            ),
            advice="주유 앱으로 가까운 주유소 가격을 비교하면 리터당 수십 원을 아낄 수 있어요.",
            source_label=FUEL_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=1680, volatility=60, change_span=2),
        ),
        AssetConfig(
            asset_id="diesel",
            name="경유",
            category="commodity",
            classify=PriceBandRule(low=1500, high=1650),
            format_price=with_unit(0, "원/L"),
            format_change_points=_won_points,
            messages=_messages(
                "경유값이 착해요! 주유하기 좋은 날이에요.",
                "경유값이 평소 수준이에요.",
                "경유값이 비싸요. 운행 계획을 알뜰하게 세워봐요.",
                "경유값이 요동치고 있어요!",
            ),
            advice="경유값은 국제 유가와 환율을 함께 따라가요. 두 카드를 같이 보면 흐름이 보여요.",
            source_label=FUEL_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=1580, volatility=60, change_span=2),
        ),
        AssetConfig(
            asset_id="kbrealestate",
            name="강남 아파트 (84㎡)",
            category="commodity",
            classify=COMMODITY_RULE,
            format_price=with_unit(2, "억원"),
            format_change_points=signed_with_unit(0, "만원", scale=EOK_TO_MAN),
            messages=_messages(
                "집값이 오르고 있어요. 부동산 시장이 뜨거워요!",
                "집값이 숨 고르기 중이에요.",
                "집값이 내려가고 있어요. 실수요자에겐 기회일지도?",
                "집값이 크게 출렁이고 있어요!",
            ),
            advice="부동산은 금리와 대출 규제의 영향을 크게 받아요. 금리 카드와 함께 보세요.",
            source_label=REAL_ESTATE_SOURCE,
            basis_label=PERIOD_BASIS,
            fallback=FallbackProfile(base=25, volatility=1, change_span=1),
        ),
        # Crypto
        AssetConfig(
            asset_id="bitcoin",
            name="비트코인",
            category="crypto",
            classify=CRYPTO_RULE,
            format_price=_won_0,
            format_change_points=_won_points,
            messages=_messages(
                "코인이 달리고 있어요!",
                "코인이 조용하네요. 폭풍 전 고요일지도?",
                "코인이 쉬어가는 중이에요. 잠시 숨 고르기?",
                "롤러코스터 출발합니다! 꽉 잡으세요!",
            ),
            advice="비트코인은 변동성이 매우 커요. 잃어도 괜찮은 금액만 투자하고, 장기 관점으로 바라보세요.",
            source_label=CRYPTO_SOURCE,
            basis_label=DAY_24H_BASIS,
            fallback=FallbackProfile(base=140_000_000, volatility=7_000_000),
        ),
        AssetConfig(
            asset_id="ethereum",
            name="이더리움",
            category="crypto",
            classify=CRYPTO_RULE,
            format_price=_won_0,
            format_change_points=_won_points,
            messages=_messages(
                "이더리움이 힘차게 오르고 있어요!",
                "이더리움이 잠잠해요.",
                "이더리움이 쉬어가는 중이에요.",
                "이더리움이 요동치고 있어요! 안전벨트 매세요!",
            ),
            advice="이더리움은 비트코인보다 더 크게 움직이는 경우가 많아요. 분할 매수로 위험을 나눠보세요.",
            source_label=CRYPTO_SOURCE,
            basis_label=DAY_24H_BASIS,
            fallback=FallbackProfile(base=5_000_000, volatility=400_000),
        ),
        # Rates and macro
        AssetConfig(
            asset_id="bonds",
            name="미국 10년물 국채",
            category="bonds",
            classify=RATE_RULE,
            format_price=_percent_price,
            format_change_points=_rate_points,
            messages=_RATE_MESSAGES,
            advice="금리가 높을 때는 예금과 적금이 유리해요. 금리가 낮을 때는 대출 받기 좋은 시기예요.",
            source_label=QUOTE_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=4.2, volatility=0.3, change_span=0.2),
            change_basis=ChangeBasis.POINTS,
        ),
        AssetConfig(
            asset_id="bonds2y",
            name="미국 2년물 국채",
            category="bonds",
            classify=RATE_RULE,
            format_price=_percent_price,
            format_change_points=_rate_points,
            messages=_RATE_MESSAGES,
            advice="2년물 금리는 기준금리 전망을 빠르게 반영해요. 금리 인하 기대가 커지면 먼저 내려가요.",
            source_label=QUOTE_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=4.0, volatility=0.3, change_span=0.2),
            change_basis=ChangeBasis.POINTS,
        ),
        AssetConfig(
            asset_id="yieldspread",
            name="장단기 금리차 (10Y-2Y)",
            category="bonds",
            classify=YieldSpreadRule(),
            format_price=signed_with_unit(2, "%p"),
            format_change_points=_rate_points,
            messages=_messages(
                "금리차가 벌어지고 있어요. 경기 회복 신호일 수 있어요.",
                "금리차가 잠잠해요.",
                "금리차가 좁혀지고 있어요. 경기 둔화에 주의하세요.",
                "장단기 금리가 역전됐어요! 경기 침체 경고등이에요.",
            ),
            advice="장기 금리가 단기 금리보다 낮아지는 역전 현상은 경기 침체의 신호로 자주 언급돼요.",
            source_label=QUOTE_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=0.2, volatility=0.2, change_span=0.1),
            change_basis=ChangeBasis.POINTS,
        ),
        AssetConfig(
            asset_id="bokrate",
            name="한국 기준금리",
            category="bonds",
            classify=RATE_RULE,
            format_price=_percent_price,
            format_change_points=_rate_points,
            messages=_messages(
                "기준금리가 올랐어요. 예금 이자가 늘어날 거예요!",
                "기준금리가 그대로거나 내려갔어요. 대출 이자 부담이 덜해요.",
                "기준금리가 크게 내려갔어요.",
                "기준금리가 급변하고 있어요!",
            ),
            advice="기준금리는 예금, 대출, 부동산까지 모든 금리의 출발점이에요. 발표일을 챙겨보세요.",
            source_label=ECOS_SOURCE,
            basis_label=PERIOD_BASIS,
            fallback=FallbackProfile(base=2.75, volatility=0.1, change_span=0.1),
            change_basis=ChangeBasis.POINTS,
        ),
        AssetConfig(
            asset_id="krbond3y",
            name="국고채 3년물",
            category="bonds",
            classify=RATE_RULE,
            format_price=_percent_price,
            format_change_points=_rate_points,
            messages=_RATE_MESSAGES,
            advice="3년물 금리는 대출 금리의 기준이 되는 경우가 많아요. 대출 계획이 있다면 눈여겨보세요.",
            source_label=ECOS_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=2.85, volatility=0.1, change_span=0.1),
            change_basis=ChangeBasis.POINTS,
        ),
        AssetConfig(
            asset_id="krbond10y",
            name="국고채 10년물",
            category="bonds",
            classify=RATE_RULE,
            format_price=_percent_price,
            format_change_points=_rate_points,
            messages=_RATE_MESSAGES,
            advice="10년물 금리는 장기 경기 전망을 보여줘요. 3년물과의 차이도 함께 살펴보세요.",
            source_label=ECOS_SOURCE,
            basis_label=DAY_BASIS,
            fallback=FallbackProfile(base=2.95, volatility=0.1, change_span=0.1),
            change_basis=ChangeBasis.POINTS,
        ),
        AssetConfig(
            asset_id="cpi",
            name="소비자물가지수",
            category="bonds",
            classify=InflationRule(),
            format_price=with_unit(2),
            format_change_points=_index_points,
            messages=_messages(
                "물가가 내려갔어요! 장바구니가 가벼워져요.",
                "물가가 안정적이에요.",
                "물가가 꽤 올랐어요. 장바구니가 무거워졌어요.",
                "물가가 급등하고 있어요!",
            ),
            advice="물가가 오르면 금리 인상 압력이 커져요. 기준금리 카드와 함께 보세요.",
            source_label=ECOS_SOURCE,
            basis_label=PERIOD_BASIS,
            fallback=FallbackProfile(base=114, volatility=1, change_span=0.6),
            change_basis=ChangeBasis.POINTS,
        ),
        AssetConfig(
            asset_id="ppi",
            name="생산자물가지수",
            category="bonds",
            classify=InflationRule(),
            format_price=with_unit(2),
            format_change_points=_index_points,
            messages=_messages(
                "생산자 물가가 내려갔어요. 소비자 물가에도 좋은 신호예요.",
                "생산자 물가가 안정적이에요.",
                "생산자 물가가 올랐어요. 곧 소비자 가격에도 반영될 수 있어요.",
                "생산자 물가가 급등하고 있어요!",
            ),
            advice="생산자물가는 몇 달 뒤 소비자물가의 방향을 미리 보여주는 경우가 많아요.",
            source_label=ECOS_SOURCE,
            basis_label=PERIOD_BASIS,
            fallback=FallbackProfile(base=120, volatility=1, change_span=0.6),
            change_basis=ChangeBasis.POINTS,
        ),
    )


class AssetRegistry:
    """Immutable lookup of asset configurations in serving order."""

    def __init__(self, configs: tuple[AssetConfig, ...]):
        ids = [config.asset_id for config in configs]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate asset id in registry")
        self._configs = configs
        self._by_id = MappingProxyType({config.asset_id: config for config in configs})

    def get(self, asset_id: str) -> AssetConfig:
        """
        Look up an asset configuration.

        Raises:
            KeyError: If the asset is not configured
        """
        return self._by_id[asset_id]

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._by_id

    def __iter__(self) -> Iterator[AssetConfig]:
        return iter(self._configs)

    def __len__(self) -> int:
        return len(self._configs)

    def ids(self) -> list[str]:
        return [config.asset_id for config in self._configs]

    def by_category(self, category: str) -> list[AssetConfig]:
        return [config for config in self._configs if config.category == category]


ASSET_REGISTRY = AssetRegistry(_build_registry())
