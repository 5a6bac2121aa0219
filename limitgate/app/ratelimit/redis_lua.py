"""Redis Lua scripts for fixed-window counters.

Scripts run atomically on the Redis server, so no other client can observe
or modify the key between the steps below.
"""

# INCR creates the key at 1 when it doesn't exist. The expiry is set on that
# first increment. A key found without any TTL (left by a non-atomic writer)
# also gets one, so it can never outlive its window indefinitely.
INCR_AND_EXPIRE_SCRIPT = """
    local window_key = KEYS[1]
    local ttl_ms = tonumber(ARGV[1])

    local count = redis.call('INCR', window_key)
    if count == 1 then
        redis.call('PEXPIRE', window_key, ttl_ms)
    elseif redis.call('PTTL', window_key) == -1 then
        redis.call('PEXPIRE', window_key, ttl_ms)
    end

    return count
"""
