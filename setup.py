from setuptools import find_packages, setup

package_name = 'mpc_tracking'

setup(
    name=package_name,
    version='0.1.0',
    packages=find_packages(exclude=['test']),
    package_data={
        package_name: [
            'config/mpc.yaml',
            'config/presets/*.yaml',
        ],
    },
    python_requires='>=3.8',
    install_requires=['setuptools', 'PyYAML', 'numpy', 'casadi'],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=True,
    description='Polynomial-reference kinematic MPC for vehicle trajectory control',
    tests_require=['pytest'],
    entry_points={
        'console_scripts': [
            'mpc_solve = mpc_tracking.cli:main',
        ],
    },
)
