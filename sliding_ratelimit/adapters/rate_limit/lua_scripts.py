# Lua evaluator for the sliding-window limiter.
# Redis runs the whole script atomically per key, so pruning, counting and
# inserting cannot interleave with another client.
# Calling TIME before a write needs effects replication, the default since
# Redis 5.
#
# KEYS[1]  sorted set, one member per accepted event, scored by its µs timestamp
# ARGV[1]  period in seconds
# ARGV[2]  limit
# ARGV[3]  expire seconds for the key
# ARGV[4]  minimal spacing between two events, µs
# ARGV[5]  1 to reserve a slot, 0 to only count
#
# Returns usage (>= 0), -usage when the limit is or became reached, or the
# error reply TOO_FAST_REPLY when another event sits inside the spacing window.

TOO_FAST_REPLY = "too fast requests"

SLIDING_WINDOW_SCRIPT = """
local key        = KEYS[1]
local period     = tonumber(ARGV[1])
local limit      = tonumber(ARGV[2])
local expiretime = tonumber(ARGV[3])
local mindiff    = tonumber(ARGV[4])
local reserve    = tonumber(ARGV[5])

-- server clock, microseconds
local t = redis.call("TIME")
local now = tonumber(t[1]) * 1000000 + tonumber(t[2])
local startwindow = now - period * 1000000

redis.call("ZREMRANGEBYSCORE", key, "-inf", startwindow)

local usage = tonumber(redis.call("ZCOUNT", key, 1, now))

if usage >= limit then
  return -usage
end

if reserve == 1 then
  local n = tonumber(redis.call("ZCOUNT", key, now - mindiff, now))
  if n ~= 0 then
    return redis.error_reply("%s")
  end
  redis.call("ZADD", key, now, now)
  redis.call("EXPIRE", key, expiretime)
  usage = tonumber(redis.call("ZCOUNT", key, 0, now))
  if usage > limit then
    return -usage
  end
end

return usage
""" % TOO_FAST_REPLY
