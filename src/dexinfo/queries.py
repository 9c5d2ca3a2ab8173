from typing import Iterable

PAIR_FIELDS = """
fragment PairFields on Pair {
  id
  txCount
  token0 { id symbol name decimals totalLiquidity derivedNativeCurrency }
  token1 { id symbol name decimals totalLiquidity derivedNativeCurrency }
  reserve0
  reserve1
  reserveUSD
  totalSupply
  trackedReserveNativeCurrency
  reserveNativeCurrency
  volumeUSD
  untrackedVolumeUSD
  token0Price
  token1Price
  createdAtTimestamp
  createdAtBlockNumber
}
"""

TOKEN_FIELDS = """
fragment TokenFields on Token {
  id
  name
  symbol
  decimals
  derivedNativeCurrency
  tradeVolume
  tradeVolumeUSD
  untrackedVolumeUSD
  totalLiquidity
  txCount
}
"""

PAIRS_CURRENT = (
    "query($first:Int!){\n"
    "  pairs(first:$first, orderBy:trackedReserveNativeCurrency, orderDirection:desc){ id }\n"
    "}"
)

PAIRS_BULK = PAIR_FIELDS + (
    "query($allPairs:[ID!]!, $first:Int!){\n"
    "  pairs(first:$first, where:{ id_in:$allPairs }, orderBy:trackedReserveNativeCurrency, orderDirection:desc){\n"
    "    ...PairFields\n"
    "  }\n"
    "}"
)

PAIRS_HISTORICAL_BULK = (
    "query($allPairs:[ID!]!, $first:Int!, $block:Block_height){\n"
    "  pairs(first:$first, where:{ id_in:$allPairs }, block:$block, orderBy:trackedReserveNativeCurrency, orderDirection:desc){\n"
    "    id reserveUSD trackedReserveNativeCurrency volumeUSD untrackedVolumeUSD createdAtBlockNumber\n"
    "  }\n"
    "}"
)

PAIR_DATA = PAIR_FIELDS + (
    "query($id:ID!, $block:Block_height){\n"
    "  pairs(block:$block, where:{ id:$id }){ ...PairFields }\n"
    "}"
)

PAIR_CHART = (
    "query($pairAddress:String!, $first:Int!, $skip:Int!, $startTime:Int!){\n"
    "  pairDayDatas(first:$first, skip:$skip, orderBy:date, orderDirection:asc,\n"
    "               where:{ pairAddress:$pairAddress, date_gt:$startTime }){\n"
    "    id date dailyVolumeToken0 dailyVolumeToken1 dailyVolumeUSD reserveUSD\n"
    "  }\n"
    "}"
)

FILTERED_TRANSACTIONS = (
    "query($allPairs:[String!]!){\n"
    "  mints(first:20, where:{ pair_in:$allPairs }, orderBy:timestamp, orderDirection:desc){\n"
    "    transaction{ id timestamp } pair{ token0{ id symbol } token1{ id symbol } }\n"
    "    to liquidity amount0 amount1 amountUSD\n"
    "  }\n"
    "  burns(first:20, where:{ pair_in:$allPairs }, orderBy:timestamp, orderDirection:desc){\n"
    "    transaction{ id timestamp } pair{ token0{ id symbol } token1{ id symbol } }\n"
    "    sender liquidity amount0 amount1 amountUSD\n"
    "  }\n"
    "  swaps(first:30, where:{ pair_in:$allPairs }, orderBy:timestamp, orderDirection:desc){\n"
    "    transaction{ id timestamp } id pair{ token0{ id symbol } token1{ id symbol } }\n"
    "    amount0In amount0Out amount1In amount1Out amountUSD to\n"
    "  }\n"
    "}"
)

TOKENS_CURRENT = (
    "query($first:Int!){\n"
    "  tokens(first:$first, orderBy:tradeVolumeUSD, orderDirection:desc){ id }\n"
    "}"
)

TOKENS_BULK = TOKEN_FIELDS + (
    "query($ids:[ID!]!, $first:Int!){\n"
    "  tokens(first:$first, where:{ id_in:$ids }){ ...TokenFields }\n"
    "}"
)

TOKENS_HISTORICAL_BULK = TOKEN_FIELDS + (
    "query($ids:[ID!]!, $first:Int!, $block:Block_height){\n"
    "  tokens(first:$first, where:{ id_in:$ids }, block:$block){ ...TokenFields }\n"
    "}"
)

TOKEN_DATA = TOKEN_FIELDS + (
    "query($id:ID!, $block:Block_height){\n"
    "  tokens(block:$block, where:{ id:$id }){ ...TokenFields }\n"
    "}"
)

NATIVE_CURRENCY_PRICE = (
    "query($block:Block_height){\n"
    "  bundles(where:{ id:\"1\" }, block:$block){ id nativeCurrencyPrice }\n"
    "}"
)

SUBGRAPH_META = (
    "query{\n"
    "  _meta{ block{ number } }\n"
    "}"
)

HEAD_BLOCK = (
    "query{\n"
    "  blocks(first:1, orderBy:number, orderDirection:desc){ number timestamp }\n"
    "}"
)

GET_BLOCK = (
    "query($timestampTo:Int!, $timestampFrom:Int!){\n"
    "  blocks(first:1, orderBy:timestamp, orderDirection:desc,\n"
    "         where:{ timestamp_lte:$timestampTo, timestamp_gt:$timestampFrom }){ id number timestamp }\n"
    "}"
)

LIQUIDITY_MINING_CAMPAIGNS = PAIR_FIELDS + (
    "query($now:BigInt!, $first:Int!){\n"
    "  active: liquidityMiningCampaigns(first:$first, where:{ endsAt_gt:$now }){ ...CampaignFields }\n"
    "  expired: liquidityMiningCampaigns(first:$first, where:{ endsAt_lte:$now }){ ...CampaignFields }\n"
    "}\n"
    "fragment CampaignFields on LiquidityMiningCampaign {\n"
    "  id duration startsAt endsAt locked stakingCap stakedAmount\n"
    "  rewards{ token{ id symbol name decimals derivedNativeCurrency } amount }\n"
    "  stakablePair{ ...PairFields }\n"
    "}"
)

# Blocks are located by a window ending at the target timestamp; the indexer
# answers with the newest block inside it
BLOCK_SEARCH_WINDOW = 600


def blocks_bulk_query(timestamps: Iterable[int]) -> str:
    parts = []
    for ts in timestamps:
        parts.append(
            f"  t{ts}: blocks(first:1, orderBy:timestamp, orderDirection:desc, "
            f"where:{{ timestamp_lte:{ts}, timestamp_gt:{ts - BLOCK_SEARCH_WINDOW} }}){{ number }}\n"
        )
    return "query blocks{\n" + "".join(parts) + "}"


def hourly_pair_rates_query(pair_address: str, blocks: Iterable[tuple]) -> str:
    """Aliased per-block rate query; each alias is t<timestamp>."""
    parts = []
    for ts, number in blocks:
        parts.append(
            f"  t{ts}: pair(id:\"{pair_address}\", block:{{ number:{number} }}){{ token0Price token1Price }}\n"
        )
    return "query rates{\n" + "".join(parts) + "}"
