"""
Server-side Lua scripts executed by RedisStore.

Each script runs atomically on the Redis server; no other command can
interleave with it.
"""
from __future__ import annotations

# KEYS: jobs, waiting
# ARGV: job id, serialized record
# Returns the id on admission, nil if the id is already in jobs.
ADMIT_SCRIPT = """
if redis.call("HSETNX", KEYS[1], ARGV[1], ARGV[2]) == 0 then
  return false
end
redis.call("LPUSH", KEYS[2], ARGV[1])
return ARGV[1]
"""

# KEYS: succeeded, failed, waiting, active, jobs
# ARGV: job id, force ("1" or "0")
# Returns 1 if the job was purged, 0 if it is terminal and force is off.
REMOVE_SCRIPT = """
local id = ARGV[1]
if ARGV[2] ~= "1" then
  if redis.call("SISMEMBER", KEYS[1], id) == 1
      or redis.call("SISMEMBER", KEYS[2], id) == 1 then
    return 0
  end
end
redis.call("LREM", KEYS[3], 0, id)
redis.call("LREM", KEYS[4], 0, id)
redis.call("SREM", KEYS[1], id)
redis.call("SREM", KEYS[2], id)
redis.call("HDEL", KEYS[5], id)
return 1
"""

# KEYS: active, waiting
# Moves every active id to the right (dispatch) end of waiting, oldest
# first in line. Returns the number of ids moved.
REQUEUE_SCRIPT = """
local moved = 0
local id = redis.call("LPOP", KEYS[1])
while id do
  redis.call("RPUSH", KEYS[2], id)
  moved = moved + 1
  id = redis.call("LPOP", KEYS[1])
end
return moved
"""

# KEYS: active, jobs, succeeded or failed (the target set)
# ARGV: job id, keep ("1" or "0"), serialized record (ignored unless keep)
# Returns 1 if the id was still in active and its outcome was recorded, 0 if
# it had been removed or requeued meanwhile (nothing is written then).
COMPLETE_SCRIPT = """
local id = ARGV[1]
if redis.call("LREM", KEYS[1], 0, id) == 0 then
  return 0
end
if ARGV[2] == "1" then
  redis.call("HSET", KEYS[2], id, ARGV[3])
  redis.call("SADD", KEYS[3], id)
else
  redis.call("HDEL", KEYS[2], id)
end
return 1
"""
