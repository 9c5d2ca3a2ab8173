import os
from dataclasses import dataclass
from typing import Dict


@dataclass
class NetworkConfig:
    name: str
    chain_id: int
    subgraph_url: str
    blocks_subgraph_url: str
    rpc_url: str
    multicall_address: str
    token_list_url: str
    # Max blocks the indexer may trail the chain head before historical
    # queries are pinned to the synced block instead
    block_difference_threshold: int = 30


@dataclass
class AppConfig:
    network: str
    networks: Dict[str, NetworkConfig]
    request_rps: float
    max_retries: int
    backoff_seconds: float
    refresh_interval_seconds: int
    # Page sizes used by bulk queries
    entity_page_size: int
    block_chunk_size: int
    hourly_block_chunk_size: int
    day_data_page_size: int
    default_swap_fee: int
    log_level: str
    write_logs_to_files: bool = False
    top_pairs_count: int = 300

    def current_network(self) -> NetworkConfig:
        return self.networks[self.network]


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(float(val))
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _get_env_bool(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def _network(name: str, **defaults) -> NetworkConfig:
    prefix = name.upper()
    return NetworkConfig(
        name=name,
        chain_id=defaults["chain_id"],
        subgraph_url=os.getenv(f"{prefix}_SUBGRAPH_URL", defaults["subgraph_url"]),
        blocks_subgraph_url=os.getenv(f"{prefix}_BLOCKS_URL", defaults["blocks_subgraph_url"]),
        rpc_url=os.getenv(f"{prefix}_RPC_URL", defaults["rpc_url"]),
        multicall_address=defaults["multicall_address"],
        token_list_url=defaults["token_list_url"],
        block_difference_threshold=_get_env_int(
            f"{prefix}_BLOCK_DIFFERENCE_THRESHOLD", defaults.get("block_difference_threshold", 30)
        ),
    )


def default_networks() -> Dict[str, NetworkConfig]:
    return {
        "mainnet": _network(
            "mainnet",
            chain_id=1,
            subgraph_url="https://api.thegraph.com/subgraphs/name/dxgraphs/swapr-mainnet-v2",
            blocks_subgraph_url="https://api.thegraph.com/subgraphs/name/blocklytics/ethereum-blocks",
            rpc_url="https://mainnet.infura.io/v3/",
            multicall_address="0xeefBa1e63905eF1D7ACbA5a8513c70307C1cE441",
            token_list_url="https://tokens.coingecko.com/uniswap/all.json",
            block_difference_threshold=30,
        ),
        "xdai": _network(
            "xdai",
            chain_id=100,
            subgraph_url="https://api.thegraph.com/subgraphs/name/dxgraphs/swapr-xdai-v2",
            blocks_subgraph_url="https://api.thegraph.com/subgraphs/name/1hive/xdai-blocks",
            rpc_url="https://rpc.gnosischain.com/",
            multicall_address="0xb5b692a88BDFc81ca69dcB1d924f59f0413A602a",
            token_list_url="https://tokens.honeyswap.org",
            block_difference_threshold=60,
        ),
        "arbitrum_one": _network(
            "arbitrum_one",
            chain_id=42161,
            subgraph_url="https://api.thegraph.com/subgraphs/name/dxgraphs/swapr-arbitrum-one-v3",
            blocks_subgraph_url="https://api.thegraph.com/subgraphs/name/dolomite-exchange/arbitrum-one-blocks",
            rpc_url="https://arb1.arbitrum.io/rpc",
            multicall_address="0x842eC2c7D803033Edf55E478F461FC547Bc54EB2",
            token_list_url="https://ipfs.io/ipfs/QmPQcxPxytZEGBdNSj1gu9QNQScXVVZNat3VcqzdDyR8QU",
            block_difference_threshold=300,
        ),
    }


def load_config() -> AppConfig:
    networks = default_networks()
    network = os.getenv("DEXINFO_NETWORK", "mainnet")
    if network not in networks:
        network = "mainnet"

    request_rps = _get_env_float("DEXINFO_REQUEST_RPS", 5.0)
    max_retries = _get_env_int("DEXINFO_MAX_RETRIES", 3)
    backoff_seconds = _get_env_float("DEXINFO_BACKOFF_SECONDS", 0.5)
    refresh_interval_seconds = _get_env_int("DEXINFO_REFRESH_SECONDS", 300)

    # Upstream limits observed on the hosted indexers
    entity_page_size = 1000
    block_chunk_size = 500
    hourly_block_chunk_size = 100
    day_data_page_size = 1000

    # 25 bips is the protocol's default swap fee
    default_swap_fee = 25

    return AppConfig(
        network=network,
        networks=networks,
        request_rps=request_rps,
        max_retries=max_retries,
        backoff_seconds=backoff_seconds,
        refresh_interval_seconds=refresh_interval_seconds,
        entity_page_size=entity_page_size,
        block_chunk_size=block_chunk_size,
        hourly_block_chunk_size=hourly_block_chunk_size,
        day_data_page_size=day_data_page_size,
        default_swap_fee=default_swap_fee,
        log_level=os.getenv("DEXINFO_LOG_LEVEL", "INFO"),
        write_logs_to_files=_get_env_bool("DEXINFO_WRITE_LOGS", False),
        top_pairs_count=_get_env_int("DEXINFO_TOP_PAIRS", 300),
    )
