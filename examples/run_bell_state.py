"""Example: sample a Bell state with tiny-qsim."""
from tiny_qsim import Circuit, sample

print("=" * 50)
print("tiny-qsim: Bell State Example")
print("=" * 50)

qc = Circuit(2, name="bell").h(0).cx(0, 1).measure_all()
result = sample(qc, shots=1000, seed=7)

print("\nMeasurement Results:")
for state, count in result.counts.items():
    print(f"  |{state}⟩: {count:4d} ({100*count/1000:5.1f}%)")

print("\nExpected: ~50% |00⟩ and ~50% |11⟩ (entangled!)")
